"""
Configuration constants for the SecurePass application.
"""

import os

# Application Metadata
APP_VERSION = "1.0"  # Use: Current version of the application. Type: str. Range: Semantic versioning string (e.g., "1.0.0")
APP_NAME = "SecurePass"  # Use: Name of the application, shown in CLI help. Type: str. Range: Any valid string.
# Use: Notice displayed by the command-line front. Type: str (multi-line). Range: Any valid string.
APP_NOTICE = """\
Secrets are sent to the configured store as entered. They are not encrypted
on this device before they leave it.
"""

# Remote Store Settings
SUPABASE_URL = os.environ.get("SECUREPASS_SUPABASE_URL", "")  # Use: Base URL of the Supabase project hosting the credential table. Type: str. Range: Absolute https URL, or empty when only the local store is used.
SUPABASE_KEY = os.environ.get("SECUREPASS_SUPABASE_KEY", "")  # Use: Public (anon) API key sent as the `apikey` header. Type: str. Range: Any string issued by the backend.
CREDENTIALS_TABLE = "passwords"  # Use: Name of the backend table holding credential rows. Type: str. Range: Any valid table name.
PROFILES_TABLE = "profiles"  # Use: Name of the backend table holding per-user profile rows (phone number). Type: str. Range: Any valid table name.
GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("SECUREPASS_GATEWAY_TIMEOUT", "10"))  # Use: Default upper bound for a single store call before it is reported as failed. Type: float. Range: Positive number of seconds.
HTTP_TIMEOUT_SECONDS = 30.0  # Use: Transport-level timeout of the HTTP client itself. Type: float. Range: Positive number of seconds, larger than GATEWAY_TIMEOUT_SECONDS.

# Backend column names keyed by canonical record field name
CREDENTIAL_COLUMNS = {  # Use: Maps CredentialRecord fields to the backend table's columns. Type: dict[str, str]. Range: One entry per record field.
    "id": "id",
    "owner_id": "user_id",
    "site_name": "website_name",
    "site_url": "website_url",
    "login_name": "username",
    "login_email": "email",
    "secret_value": "encrypted_password",
    "note": "purpose",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

# Local Store Settings
CONFIG_DIR = os.environ.get("SECUREPASS_HOME", os.path.join(os.path.expanduser("~"), ".securepass"))  # Use: Directory holding the local prototype store, account list and saved session. Type: str. Range: Any writable directory path.
LOCAL_RECORDS_FILE = "passwords.json"  # Use: Filename of the local prototype credential store. Type: str. Range: Any valid filename.
LOCAL_USERS_FILE = "users.json"  # Use: Filename of the local prototype account list. Type: str. Range: Any valid filename.
SESSION_FILE = "session.json"  # Use: Filename where the command-line front keeps the signed-in session. Type: str. Range: Any valid filename.
SESSION_REFRESH_LEEWAY_SECONDS = 60  # Use: Access tokens this close to expiry are refreshed before use. Type: int. Range: 0 or more seconds, well below the token lifetime.

# Security Settings
SALT_SIZE = 16  # Use: Size of the random salt in bytes for account password hashing. Type: int. Range: At least 16 bytes (128 bits).
KEY_SIZE = 32  # Use: Length in bytes of the derived account password digest. Type: int. Range: 32 bytes (SHA-256 output).
KEY_DERIVATION_ITERATIONS = 310000  # Use: Number of PBKDF2-HMAC-SHA256 iterations for local account passwords. Type: int. Range: At least 100,000.
ACCOUNT_PASSWORD_MIN_LENGTH = 6  # Use: Minimum length of a new account password. Type: int. Range: Positive integer.
PHONE_NUMBER_PATTERN = r"^[6-9]\d{9}$"  # Use: Accepted format for the optional profile phone number (10-digit Indian mobile number). Type: str (regex). Range: Any valid regular expression.

# Display Settings
FAVICON_ENDPOINT = "https://www.google.com/s2/favicons?domain={domain}&sz=32"  # Use: Template for a site's favicon URL, formatted with the site's host name. Type: str. Range: URL template with a {domain} field.
HIDDEN_SECRET_TEXT = "••••••••"  # Use: Placeholder shown instead of a secret that is not revealed. Type: str. Range: Any string.

# Clipboard Settings
CLIPBOARD_CLEAR_TIMEOUT_DEFAULT_SECONDS = 30  # Use: Default timeout in seconds after which a copied secret is cleared from the clipboard. Type: int. Range: CLIPBOARD_CLEAR_TIMEOUT_MIN_SECONDS to CLIPBOARD_CLEAR_TIMEOUT_MAX_SECONDS.
CLIPBOARD_CLEAR_TIMEOUT_MIN_SECONDS = 10  # Use: Minimum configurable clipboard clear timeout in seconds. Type: int. Range: Positive integer.
CLIPBOARD_CLEAR_TIMEOUT_MAX_SECONDS = 300  # Use: Maximum configurable clipboard clear timeout in seconds. Type: int. Range: Positive integer.
CLIPBOARD_CLEAR_TIMEOUT_DEFAULT = CLIPBOARD_CLEAR_TIMEOUT_DEFAULT_SECONDS * 1000  # Use: Default clipboard clear timeout in milliseconds. Derived from CLIPBOARD_CLEAR_TIMEOUT_DEFAULT_SECONDS. Type: int. Range: Derived value.

# Logging
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'  # Use: Format of log lines written by the command-line front. Type: str. Range: Any logging format string.
