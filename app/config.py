# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""DGC Validator configuration.

Feed contract constants are fixed by the authority. Configurable defaults may
be overridden via environment variables.
"""

import os

# =============================================================================
# AUTHORITY FEED CONTRACT (fixed)
# =============================================================================

RESUME_TOKEN_HEADER: str = "X-RESUME-TOKEN"
KID_HEADER: str = "X-KID"
REVOCATION_LIST_KEY: str = "black_list_uvci"
REVOCATION_LIST_DELIMITER: str = ";"

# =============================================================================
# AUTHORITY FEEDS
# =============================================================================

STATUS_URL: str = os.getenv(
    "DGC_STATUS_URL", "https://get.dgc.gov.it/v1/dgc/signercertificate/status"
)
UPDATE_URL: str = os.getenv(
    "DGC_UPDATE_URL", "https://get.dgc.gov.it/v1/dgc/signercertificate/update"
)
SETTINGS_URL: str = os.getenv(
    "DGC_SETTINGS_URL", "https://get.dgc.gov.it/v1/dgc/settings"
)

# =============================================================================
# REFRESH POLICY
# =============================================================================

REFRESH_INTERVAL_SECONDS: float = float(os.getenv("DGC_REFRESH_INTERVAL", "86400"))
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("DGC_HTTP_TIMEOUT", "10.0"))
REFRESH_MAX_ATTEMPTS: int = int(os.getenv("DGC_REFRESH_MAX_ATTEMPTS", "3"))
REFRESH_BACKOFF_BASE: float = float(os.getenv("DGC_REFRESH_BACKOFF_BASE", "1.0"))
MAX_CERTIFICATE_PAGES: int = int(os.getenv("DGC_MAX_CERTIFICATE_PAGES", "5000"))

# =============================================================================
# RESPONSES
# =============================================================================

ADD_HOLDER_DETAILS: bool = os.getenv("DGC_ADD_HOLDER_DETAILS", "false").lower() == "true"

# =============================================================================
# NETWORK
# =============================================================================

HTTP_HOST: str = os.getenv("DGC_HTTP_HOST", "0.0.0.0")
HTTP_PORT: int = int(os.getenv("DGC_HTTP_PORT", "3000"))

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL: str = os.getenv("DGC_LOG_LEVEL", "INFO")
