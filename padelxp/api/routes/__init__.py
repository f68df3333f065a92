"""
Route registry: the shared rate limiter and one router per domain.

Include order matters where static paths share a prefix with a
parameterised one.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
# No limits under ENV=test
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
limiter = Limiter(key_func=get_remote_address, enabled=not IS_TEST_ENV)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------
INVALID_CREDENTIALS_RESPONSE = HTTPException(
    status_code=401, detail="Email or password is incorrect"
)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from padelxp.api.routes.auth import router as auth_router
from padelxp.api.routes.clubs import router as clubs_router
from padelxp.api.routes.matches import router as matches_router
from padelxp.api.routes.leaderboard import router as leaderboard_router
from padelxp.api.routes.challenges import router as challenges_router
from padelxp.api.routes.subscriptions import router as subscriptions_router
from padelxp.api.routes.trial import router as trial_router
from padelxp.api.routes.admin import router as admin_router
from padelxp.api.routes.support import router as support_router
from padelxp.api.routes.reviews import router as reviews_router
from padelxp.api.routes.tournaments import router as tournaments_router

router = APIRouter()
router.include_router(auth_router)
# challenges before clubs: /api/clubs/challenges must not match /api/clubs/{club_id}
router.include_router(challenges_router)
router.include_router(clubs_router)
router.include_router(matches_router)
router.include_router(leaderboard_router)
router.include_router(subscriptions_router)
router.include_router(trial_router)
router.include_router(admin_router)
router.include_router(support_router)
router.include_router(reviews_router)
router.include_router(tournaments_router)
