import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .models.schemas import (
    BatchItem,
    BatchRequest,
    ClassificationStats,
    ClassifyRequest,
    ClassifyResponse,
    PreviewResponse,
    TaggedPost,
    ValidationReport,
    ValidationRequest,
)
from .service.batch import BatchClassificationService, classify_posts, validate_classifier
from .service.classifier import PostClassifier, get_classifier
from .service.store import create_post_store
from .utils.loader import get_dictionary_loader

logger = logging.getLogger(settings.SERVICE_NAME + ".api")

router = APIRouter(prefix=f"/{settings.API_VERSION}")


def get_post_classifier() -> PostClassifier:
    return get_classifier()


def get_batch_service(request: Request) -> BatchClassificationService:
    service = getattr(request.app.state, "batch_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Post store is not available")
    return service


@router.post(
    "/classify",
    response_model=ClassifyResponse,
    summary="Classify a caption",
    description="Returns up to three category tags with confidences. Nothing is stored.",
)
async def classify_caption(
    request: ClassifyRequest,
    classifier: PostClassifier = Depends(get_post_classifier),
) -> ClassifyResponse:
    return ClassifyResponse(results=classifier.classify(request.caption))


@router.post(
    "/preview",
    response_model=PreviewResponse,
    summary="Preview the tags of a caption",
)
async def preview_caption(
    request: ClassifyRequest,
    classifier: PostClassifier = Depends(get_post_classifier),
) -> PreviewResponse:
    return classifier.preview(request.caption)


@router.post(
    "/posts/{post_id}/classify",
    response_model=Optional[TaggedPost],
    summary="Classify a post and store its tags",
    description="Returns null when the caption has no confident category; nothing is written then.",
)
async def classify_and_tag_post(
    post_id: str,
    request: ClassifyRequest,
    service: BatchClassificationService = Depends(get_batch_service),
) -> Optional[TaggedPost]:
    return await service.classify_and_tag(post_id, request.caption)


@router.post(
    "/batch",
    response_model=List[BatchItem],
    summary="Classify many posts without storing tags",
)
async def classify_batch(
    request: BatchRequest,
    classifier: PostClassifier = Depends(get_post_classifier),
) -> List[BatchItem]:
    logger.info(f"Received batch of {len(request.posts)} posts")
    return classify_posts(classifier, request.posts)


@router.post(
    "/posts/classify-untagged",
    response_model=List[TaggedPost],
    summary="Tag one page of stored posts that have no tags",
)
async def classify_untagged_posts(
    batch_size: int = Query(default=settings.READ_BATCH_SIZE, gt=0, le=500),
    service: BatchClassificationService = Depends(get_batch_service),
) -> List[TaggedPost]:
    try:
        return await service.classify_existing_posts(batch_size)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error in batch classification: {str(e)}")


@router.post(
    "/posts/reclassify",
    response_model=List[TaggedPost],
    summary="Re-run classification on stored posts and overwrite their tags",
)
async def reclassify_posts(
    batch_size: int = Query(default=settings.RECLASSIFY_BATCH_SIZE, gt=0, le=500),
    service: BatchClassificationService = Depends(get_batch_service),
) -> List[TaggedPost]:
    try:
        return await service.reclassify_posts(batch_size)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error in reclassification: {str(e)}")


@router.get(
    "/stats",
    response_model=ClassificationStats,
    summary="Tagging statistics over stored posts",
)
async def classification_stats(
    service: BatchClassificationService = Depends(get_batch_service),
) -> ClassificationStats:
    try:
        return await service.get_classification_stats()
    except Exception as e:
        logger.error(f"Error getting classification stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting classification stats: {str(e)}")


@router.post(
    "/validate",
    response_model=ValidationReport,
    summary="Measure classifier accuracy on labeled captions",
)
async def validate_cases(
    request: ValidationRequest,
    classifier: PostClassifier = Depends(get_post_classifier),
) -> ValidationReport:
    return validate_classifier(classifier, request.cases)


@router.get(
    "/categories",
    response_model=List[str],
    summary="List the category tags the classifier can assign",
)
async def list_categories(
    classifier: PostClassifier = Depends(get_post_classifier),
) -> List[str]:
    return classifier.categories


@router.get(
    "/healthz",
    response_model=dict,
    summary="Health check endpoint",
)
async def health_check(request: Request) -> dict:
    loader = get_dictionary_loader()
    if not loader.is_loaded:
        return {
            "status": "degraded",
            "service": settings.SERVICE_NAME,
            "dictionary_loaded": False,
            "message": "Keyword dictionary not loaded",
        }

    dictionary = loader.get_dictionary()
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "dictionary_loaded": True,
        "categories_count": len(dictionary.categories),
        "store_available": getattr(request.app.state, "batch_service", None) is not None,
    }


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application for the Post Classifier service.
    """
    app = FastAPI(
        title="Post Classifier Service",
        description="Tags social-media post captions with topical categories from a keyword dictionary.",
        version="0.1.0",
        docs_url=f"/{settings.API_VERSION}/docs",
        redoc_url=f"/{settings.API_VERSION}/redoc",
        openapi_url=f"/{settings.API_VERSION}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, tags=["Post Classifier"])

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting Post Classifier service")
        # Fail fast on a broken dictionary
        classifier = get_classifier()
        store = create_post_store()
        app.state.store = store
        app.state.batch_service = BatchClassificationService(classifier, sink=store)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down Post Classifier service")
        store = getattr(app.state, "store", None)
        if store is not None:
            await store.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("Running Post Classifier API directly")
    uvicorn.run(
        "post_classifier.api:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=True,
    )
