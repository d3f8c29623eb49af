"""CommissionDesk: commission management for office-equipment dealers."""
