"""Read-side adapters that report task progress to clients."""
