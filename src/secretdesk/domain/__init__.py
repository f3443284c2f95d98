"""Domain layer: callback detection, session reconciliation and provisioning."""
