"""FastAPI dependency providers for the content pipeline.

The persona service and retrieval client (sharing one TTL cache) are
created once per application in create_app() and kept on app.state.
Everything that needs a database session factory reads it from db_manager
at request time, so tests can swap the global factory.
"""

from fastapi import Depends, Request

from getcare.core.database import db_manager
from getcare.integrations.claude import ClaudeClient, get_claude
from getcare.integrations.images import ImagenClient, get_images
from getcare.integrations.retrieval import RetrievalClient
from getcare.services.author_persona import PersonaService
from getcare.services.content_pipeline import ContentPipeline
from getcare.services.generation_queue import GenerationQueue
from getcare.services.generation_worker import GenerationWorker
from getcare.services.progress_stream import ProgressStream


def get_persona_service(request: Request) -> PersonaService:
    return request.app.state.persona_service


def get_retrieval(request: Request) -> RetrievalClient:
    return request.app.state.retrieval


async def get_pipeline(
    personas: PersonaService = Depends(get_persona_service),
    retrieval: RetrievalClient = Depends(get_retrieval),
    llm: ClaudeClient = Depends(get_claude),
    images: ImagenClient = Depends(get_images),
) -> ContentPipeline:
    return ContentPipeline(
        db_manager.session_factory,
        llm=llm,
        personas=personas,
        images=images,
        retrieval=retrieval,
    )


def get_queue() -> GenerationQueue:
    return GenerationQueue(db_manager.session_factory)


def get_worker(pipeline: ContentPipeline = Depends(get_pipeline)) -> GenerationWorker:
    return GenerationWorker(db_manager.session_factory, pipeline)


def get_progress_stream(
    queue: GenerationQueue = Depends(get_queue),
    worker: GenerationWorker = Depends(get_worker),
) -> ProgressStream:
    return ProgressStream(queue, worker)
