"""Command line tools for the Lifecycle Workflow Engine."""
