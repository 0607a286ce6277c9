"""Thin HTTP adapter over :class:`KnowledgeService`.

Every route delegates to the service; the service and its store live on
``app.state`` and are opened/closed with the application lifespan.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from config.settings import KnowledgebaseConfig
from indexer.errors import ConflictError, ParseError, SimilarityRejection
from indexer.models import QueryFilters
from indexer.sqlite_store import KnowledgeStore
from services.knowledge_service import KnowledgeService

logger = logging.getLogger(__name__)


class IndexRequest(BaseModel):
    knowledgebase: str = "android"


class ProjectIndexRequest(BaseModel):
    path: Optional[str] = None


class DuplicateCheckRequest(BaseModel):
    frontmatter: Dict[str, Any]
    content: str
    knowledgebase: str = "android"


class CreateFileRequest(BaseModel):
    frontmatter: Dict[str, Any]
    content: str
    knowledgebase: str = "android"
    level_folder: str = Field(..., alias="levelFolder")

    model_config = {"populate_by_name": True}


def get_service(request: Request) -> KnowledgeService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Knowledge store not initialized")
    return service


def _tags(tags: Optional[str]) -> List[str]:
    return [t.strip() for t in tags.split(",") if t.strip()] if tags else []


def create_app(config: Optional[KnowledgebaseConfig] = None) -> FastAPI:
    config = config or KnowledgebaseConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = KnowledgeStore(config.db_path).open()
        app.state.service = KnowledgeService(store, config)
        logger.info(f"Knowledge service ready: {config.db_path}")
        try:
            yield
        finally:
            store.close()
            app.state.service = None

    app = FastAPI(title="Knowledgebase API", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/index")
    def list_knowledgebases(service: KnowledgeService = Depends(get_service)):
        return {"knowledgebases": service.store.list_knowledgebases()}

    @app.post("/index")
    def reindex(body: IndexRequest, service: KnowledgeService = Depends(get_service)):
        try:
            report = service.reindex_knowledgebase(body.knowledgebase)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"success": True, "message": f"Indexed {body.knowledgebase} knowledge base", "report": report.to_dict()}

    @app.get("/files")
    def list_files(level: Optional[str] = None, knowledgebase: Optional[str] = None,
                   topic: Optional[str] = None, tags: Optional[str] = None,
                   service: KnowledgeService = Depends(get_service)):
        filters = QueryFilters(level=level, knowledgebase=knowledgebase, topic=topic, tags=_tags(tags))
        return {"files": [r.to_dict() for r in service.query(filters)]}

    @app.get("/search")
    def search(q: str = Query(""), level: Optional[str] = None, knowledgebase: Optional[str] = None,
               topic: Optional[str] = None, service: KnowledgeService = Depends(get_service)):
        if not q.strip():
            raise HTTPException(status_code=400, detail="Query parameter 'q' is required")
        filters = QueryFilters(level=level, knowledgebase=knowledgebase, topic=topic)
        return {"files": [r.to_dict() for r in service.search(q, filters)]}

    @app.get("/files/resolve")
    def resolve_file(filename: str, knowledgebase: Optional[str] = None,
                     service: KnowledgeService = Depends(get_service)):
        record = service.resolve_filename(filename, knowledgebase)
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")
        return {"slug": record.slug, "knowledgebase": record.knowledgebase}

    @app.get("/files/by-id/{canonical_id}")
    def file_by_id(canonical_id: str, service: KnowledgeService = Depends(get_service)):
        record = service.store.get_by_canonical_id(canonical_id)
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")
        return {"file": record.to_dict()}

    @app.get("/files/{slug}")
    def file_by_slug(slug: str, knowledgebase: Optional[str] = None,
                     service: KnowledgeService = Depends(get_service)):
        record = service.store.get_by_slug(slug, knowledgebase)
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")
        return {"file": record.to_dict()}

    @app.get("/topics")
    def topics(knowledgebase: str, service: KnowledgeService = Depends(get_service)):
        return {"topics": service.store.list_topics(knowledgebase)}

    @app.get("/roadmap")
    def roadmap(knowledgebase: str = "android", topic: Optional[str] = None,
                service: KnowledgeService = Depends(get_service)):
        return {"roadmap": service.query_roadmap(knowledgebase, topic).to_dict()}

    @app.post("/admin/check-duplicate")
    def check_duplicate(body: DuplicateCheckRequest, service: KnowledgeService = Depends(get_service)):
        try:
            candidate = service.candidate_from_metadata(body.frontmatter, body.content, body.knowledgebase)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=e.reason)
        return service.check_duplicate(candidate).to_dict()

    @app.post("/admin/files")
    def create_file(body: CreateFileRequest, service: KnowledgeService = Depends(get_service)):
        try:
            record = service.admit(body.frontmatter, body.content, body.knowledgebase, body.level_folder)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=e.reason)
        except ConflictError as e:
            raise HTTPException(status_code=409, detail={"error": str(e), e.field: e.value})
        except SimilarityRejection as e:
            raise HTTPException(status_code=409, detail={
                "error": "Similar content detected",
                "similar_files": [
                    {"canonical_id": r.canonical_id, "title": r.title, "similarity": score}
                    for r, score in e.matches
                ],
            })
        return {
            "success": True,
            "file": {
                "canonical_id": record.canonical_id,
                "slug": record.slug,
                "title": record.title,
                "file_path": record.source_path,
            },
        }

    @app.get("/projects")
    def list_projects(topic: Optional[str] = None, level: Optional[str] = None,
                      service: KnowledgeService = Depends(get_service)):
        return {"projects": [p.to_dict() for p in service.store.list_projects(topic, level)]}

    @app.get("/projects/topics")
    def project_topics(service: KnowledgeService = Depends(get_service)):
        return {"topics": service.store.list_project_topics()}

    @app.post("/projects/index")
    def index_projects(body: ProjectIndexRequest, service: KnowledgeService = Depends(get_service)):
        try:
            report = service.reindex_projects(body.path)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"success": True, "report": report.to_dict()}

    @app.get("/projects/{topic}/{slug}")
    def get_project(topic: str, slug: str, service: KnowledgeService = Depends(get_service)):
        project = service.store.get_project(topic, slug)
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")
        return {"project": project.to_dict()}

    return app
