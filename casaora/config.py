import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./casaora.db")

# Supabase Auth - access tokens are HS256 JWTs signed with the project JWT secret
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
if not SUPABASE_JWT_SECRET:
    import warnings

    warnings.warn(
        "SUPABASE_JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    SUPABASE_JWT_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Anthropic (Amara concierge, review analysis, matching)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
AMARA_MODEL = os.getenv("AMARA_MODEL", "claude-sonnet-4-5")
AMARA_MAX_TOOL_ROUNDS = int(os.getenv("AMARA_MAX_TOOL_ROUNDS", "5"))

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Casaora <noreply@casaora.co>")

# Redis (rate limiting, arq worker)
REDIS_URL = os.getenv("REDIS_URL")

# Shared secret for cron-triggered endpoints
CRON_SECRET = os.getenv("CRON_SECRET")

# Feature flags
REBOOK_NUDGE_ENABLED = os.getenv("REBOOK_NUDGE_ENABLED", "true").lower() == "true"

# Direct hire fee in COP cents ($299 USD at 4,000 COP/USD)
DIRECT_HIRE_FEE_COP = int(os.getenv("DIRECT_HIRE_FEE_COP", "1196000"))
