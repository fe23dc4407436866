import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from patent_explorer.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

class EnvValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

def validate_environment(settings: Optional[Settings] = None) -> EnvValidationResult:
    """
    Check that the credentials the current mode needs are present.

    Production needs the database, token verification, Polar billing and the
    AI gateway; missing search or sandbox keys only degrade individual tools
    and are reported as warnings. Development never fails.
    """
    settings = settings or default_settings
    errors: List[str] = []
    warnings: List[str] = []

    if not settings.is_development:
        if not settings.host:
            errors.append("HOST is required in production")
        if not settings.db_username or not settings.secret(settings.db_password):
            errors.append("DB_USERNAME and DB_PASSWORD are required in production")
        if not settings.database:
            errors.append("DATABASE is required in production")
        if not settings.secret(settings.supabase_jwt_secret):
            errors.append("SUPABASE_JWT_SECRET is required in production")

        if not settings.secret(settings.polar_access_token):
            errors.append("POLAR_ACCESS_TOKEN is required in production")
        if not settings.secret(settings.polar_webhook_secret):
            warnings.append("POLAR_WEBHOOK_SECRET missing - billing webhooks cannot be verified")
        if not settings.polar_unlimited_product_id:
            warnings.append("POLAR_UNLIMITED_PRODUCT_ID missing - unlimited checkout is unavailable")
        if not settings.polar_pay_per_use_product_id:
            warnings.append("POLAR_PAY_PER_USE_PRODUCT_ID missing - pay-per-use checkout is unavailable")

        if not settings.secret(settings.valyu_api_key):
            warnings.append("VALYU_API_KEY missing - patent search will fail")
        if not settings.secret(settings.daytona_api_key):
            warnings.append("DAYTONA_API_KEY missing - code execution will fail")
        if not settings.secret(settings.ai_gateway_api_key):
            errors.append("AI_GATEWAY_API_KEY is required - get your key at https://vercel.com/dashboard > AI Gateway > API Keys")
    elif not settings.secret(settings.ai_gateway_api_key):
        warnings.append("AI_GATEWAY_API_KEY missing - hosted model fallback will not work")

    return EnvValidationResult(valid=not errors, errors=errors, warnings=warnings)

def log_environment_status(settings: Optional[Settings] = None) -> EnvValidationResult:
    settings = settings or default_settings
    result = validate_environment(settings)
    mode = "development" if settings.is_development else "production"

    if result.valid:
        logger.info(f"✅ Environment validated ({mode} mode)")
    else:
        logger.error(f"❌ Environment validation failed ({mode} mode):")
        for error in result.errors:
            logger.error(f"  - {error}")
    for warning in result.warnings:
        logger.warning(f"  - {warning}")
    return result
