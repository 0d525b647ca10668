"""
SecurePass credential manager

NOTICE:
Credential secrets are stored in the configured store exactly as entered.
They are not encrypted on this device before they are sent. Point the
application only at a store you control, over HTTPS.
"""
