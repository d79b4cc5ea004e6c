from subtrack.auth.init_data import (
    Diagnostics,
    InitDataFailure,
    TelegramUser,
    VerificationResult,
    normalize_init_data,
    sign_init_data,
    verify_init_data,
)
from subtrack.auth.launch import init_data_from_launch_url

__all__ = [
    "Diagnostics",
    "InitDataFailure",
    "TelegramUser",
    "VerificationResult",
    "init_data_from_launch_url",
    "normalize_init_data",
    "sign_init_data",
    "verify_init_data",
]
