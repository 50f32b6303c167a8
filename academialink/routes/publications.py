"""
Publication import routes: pull a user's works from ORCID or Semantic Scholar.
"""
from fastapi import APIRouter, HTTPException, Query

from ..errors import PublicationSourceError
from ..logging_config import logger
from ..schemas import PublicationImportBody, PublicationImportOut
from ..services.publication_service import (
    delete_publication,
    import_publications,
    list_publications,
)

router = APIRouter(prefix="/api", tags=["publications"])


@router.post("/publications/import", response_model=PublicationImportOut)
async def import_user_publications(payload: PublicationImportBody):
    """
    Fetch publications from the chosen source and store the ones the user
    does not have yet. Returns only the newly added records.
    """
    try:
        result = await import_publications(
            payload.user_id,
            payload.source,
            orcid_id=payload.orcid_id,
            author_name=payload.author_name,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PublicationSourceError as e:
        logger.error("Publication import failed", source=payload.source, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    return PublicationImportOut(
        total_found=result.total_found,
        new_added=result.new_added,
        publications=result.publications,
    )


@router.get("/publications")
async def get_publications(user_id: str = Query(..., min_length=1)):
    return list_publications(user_id)


@router.delete("/publications/{publication_id}")
async def remove_publication(publication_id: str, user_id: str = Query(..., min_length=1)):
    if not delete_publication(publication_id, user_id):
        raise HTTPException(status_code=404, detail="Publication not found")
    return {"ok": True}
