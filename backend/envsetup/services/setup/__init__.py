"""Environment setup flow: initialization, provisioning and selection."""
