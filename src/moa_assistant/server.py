"""HTTP endpoint answering a question about an uploaded image."""

from __future__ import annotations

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from moa_assistant.app_config import load_json_config, parse_app_config, resolve_runtime_env
from moa_assistant.bootstrap import build_provider
from moa_assistant.logging_config import SERVER_CONSUMERS, setup_logging
from moa_assistant.provider import AssistantProvider

DEFAULT_QUESTION = "Explain what is in this image."

router = APIRouter()


def _get_provider(request: Request) -> AssistantProvider:
    return request.app.state.provider


@router.post("/ask-moa")
async def ask_moa(
    request: Request,
    image: UploadFile | None = File(None),
    question: str | None = Form(None),
):
    """Answer ``question`` about ``image``.

    Args:
        request: The FastAPI request carrying the provider in app state.
        image: The uploaded image (multipart field ``image``).
        question: Optional question; a generic description is asked for when empty.

    Returns:
        ``{"success": true, "answer": ...}``, or an ``{"error": ...}`` body with
        status 400 when no image was sent and 500 when the backend call fails.
    """
    if image is None:
        return JSONResponse(status_code=400, content={"error": "No image uploaded"})

    try:
        data = await image.read()
        mime_type = image.content_type or "image/jpeg"
        answer = await _get_provider(request).answer_about_image(data, mime_type, question or DEFAULT_QUESTION)
    except Exception as ex:
        logger.error(f"Error processing request: {ex}")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    return {"success": True, "answer": answer}


def create_app(provider: AssistantProvider) -> FastAPI:
    app = FastAPI(title="MOA AI")
    app.state.provider = provider
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    load_dotenv()
    app_config = parse_app_config(load_json_config())
    setup_logging(level=app_config.log_level, consumers=app_config.log_consumers, defaults=SERVER_CONSUMERS)
    env = resolve_runtime_env(app_config.provider_name)

    app = create_app(build_provider(app_config, env))
    logger.info(f"Server is running at http://localhost:{env.port}")
    uvicorn.run(app, host="0.0.0.0", port=env.port, log_level=app_config.log_level.lower())


if __name__ == "__main__":
    main()
