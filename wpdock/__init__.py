"""WordPress site provisioning, backup and restore over SSH."""
