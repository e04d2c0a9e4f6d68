# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real tokens. Use .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "ASTRA_APP_NAME": "App display name (default: astrashare).",
    "ASTRA_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "ASTRA_CONSOLE_ENABLED": "Run the interactive console (true/false).",
    # Backend
    "ASTRA_BACKEND_URL": "Analysis backend base URL (default: http://localhost:8000; BACKEND_URL also works).",
    "ASTRA_AUTH_TOKEN": "Bearer token from the sign-in flow (required for history, delete and scans).",
    "ASTRA_HTTP_TIMEOUT_SECONDS": "Read timeout for regular requests (default: 15).",
    "ASTRA_HTTP_CONNECT_TIMEOUT_SECONDS": "Connect timeout (default: 5).",
    # Task tracking
    "ASTRA_POLL_INTERVAL_SECONDS": "Fixed status polling cadence (default: 3).",
    "ASTRA_HISTORY_LIMIT": "How many tasks to load from history (default: 20).",
    # Notifications
    "ASTRA_NOTIFICATIONS_SUPPORTED": "Set false to report notifications as unsupported.",
    "ASTRA_NOTIFIED_CAP": "How many notified task ids to remember (default: 200).",
    # Paths (gitignored)
    "ASTRA_DATA_DIR": "Local data directory (default: .local/astrashare).",
    "ASTRA_STATE_DB_PATH": "Client state SQLite path (default: <data_dir>/client_state.sqlite3).",
}
