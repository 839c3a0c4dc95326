from .matching import router as matching_router
