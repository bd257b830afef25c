"""End-to-end validation harness for the provisioning core."""
