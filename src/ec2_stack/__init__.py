"""Provision an EC2 instance with Route 53 records from a JSON stack file."""
