# phantom/plugins/adapters/__init__.py
# Built-in transports
