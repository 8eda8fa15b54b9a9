"""gatewaysync - reconcile API definitions onto external API gateways."""

__version__ = "0.1.0"
