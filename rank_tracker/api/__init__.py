from rank_tracker.api.routes.debug import router as debug_router
from rank_tracker.api.routes.keywords import router as keywords_router
from rank_tracker.api.routes.maintenance import router as maintenance_router
from rank_tracker.api.routes.playlists import router as playlists_router

__all__ = ["debug_router", "keywords_router", "maintenance_router", "playlists_router"]
