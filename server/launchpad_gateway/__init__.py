"""Launchpad Gateway: job/task orchestration for the customer launchpad."""
