"""REST API for the Lifecycle Workflow Engine."""
