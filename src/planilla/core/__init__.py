"""Domain core: tenancy, roles, plans, entitlements and membership."""
