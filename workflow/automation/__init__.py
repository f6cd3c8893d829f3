"""Status-change automations and transitions."""
