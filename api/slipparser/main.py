import logging
import os
from typing import Optional

from dotenv import load_dotenv

# .env fills gaps only; real environment variables win
load_dotenv(override=False)

from fastapi import FastAPI, File, Form, Header, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .logging_config import log_with_context, setup_from_env
from .middleware.request_context import RequestContextMiddleware
from .parsers.common import OcrError, ocr_image_bytes
from .parsers.slip_normalizer import BatchItem, InvalidSlipInput, NormalizeResult, get_normalizer
from .schemas import (
    BatchErrorOut,
    BatchRequest,
    BatchResponse,
    BatchSlipOut,
    MetaOut,
    NormalizeRequest,
    NormalizeResponse,
    OcrResponse,
    ParseResponse,
    SlipOut,
)
from .security import verify_api_key

setup_from_env()
logger = logging.getLogger(__name__)

MAX_FILE_MB = int(os.getenv("MAX_FILE_MB", "10"))
MAX_BATCH_SLIPS = int(os.getenv("MAX_BATCH_SLIPS", "100"))
OCR_LANG = os.getenv("OCR_LANG", "tha+eng")

app = FastAPI(title="Slip Parser API", version="0.1.0")

# Format: comma-separated list of origins, e.g. "http://localhost:3000,https://slips.example.com"
cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
origins = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["Authorization", "Content-Type", "x-api-key", "X-API-Key", "X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(InvalidSlipInput)
async def invalid_slip_handler(request: Request, exc: InvalidSlipInput):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


def _slip_out(result: NormalizeResult) -> SlipOut:
    return SlipOut.model_validate(result.record.to_dict())


def _meta_out(result: NormalizeResult) -> MetaOut:
    return MetaOut(**result.meta.to_dict())


async def _read_upload(file: UploadFile) -> bytes:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")
    if len(data) > MAX_FILE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large (max {MAX_FILE_MB} MB)",
        )
    return data


async def _ocr(data: bytes, request: Request) -> str:
    try:
        text = await run_in_threadpool(ocr_image_bytes, data, OCR_LANG)
    except OcrError as exc:
        log_with_context(
            logger,
            logging.WARNING,
            "OCR failed",
            request_id=getattr(request.state, "request_id", None),
            error=str(exc),
        )
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"OCR failed: {exc}") from exc
    return text


@app.get("/health")
def health():
    policy = get_normalizer().policy
    return {"ok": True, "profiles": [p.name for p in policy.ordered()]}


@app.post("/v1/normalize", response_model=NormalizeResponse)
def normalize(
    body: NormalizeRequest,
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
):
    verify_api_key(authorization, x_api_key)
    result = get_normalizer().normalize_with_meta(body.text, body.bank_hint)
    return NormalizeResponse(slip=_slip_out(result), meta=_meta_out(result))


@app.post("/v1/normalize/batch", response_model=BatchResponse)
def normalize_batch(
    body: BatchRequest,
    request: Request,
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
):
    _, tenant_id = verify_api_key(authorization, x_api_key)
    if not body.texts:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No slips provided")
    if len(body.texts) > MAX_BATCH_SLIPS:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Too many slips (max {MAX_BATCH_SLIPS} per batch)",
        )

    items = [
        BatchItem(id=str(t.id), text=t.text, file_name=t.file_name, bank_hint=t.bank_hint)
        for t in body.texts
    ]
    outcomes = get_normalizer().normalize_batch(items, bank_hint=body.bank_hint)

    response = BatchResponse()
    for outcome in outcomes:
        if outcome.ok:
            payload = outcome.result.record.to_dict()
            payload.update(source_id=outcome.id, file_name=outcome.file_name)
            response.slips.append(BatchSlipOut.model_validate(payload))
        else:
            response.errors.append(
                BatchErrorOut(source_id=outcome.id, file_name=outcome.file_name, error=outcome.error)
            )

    log_with_context(
        logger,
        logging.INFO,
        "Batch normalized",
        request_id=getattr(request.state, "request_id", None),
        tenant_id=tenant_id,
        slips=len(response.slips),
        errors=len(response.errors),
    )
    return response


@app.post("/v1/ocr", response_model=OcrResponse)
async def ocr(
    request: Request,
    file: UploadFile = File(...),
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
):
    verify_api_key(authorization, x_api_key)
    data = await _read_upload(file)
    return OcrResponse(text=await _ocr(data, request))


@app.post("/v1/parse", response_model=ParseResponse)
async def parse(
    request: Request,
    file: UploadFile = File(...),
    bank_hint: Optional[str] = Form(None),
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
):
    verify_api_key(authorization, x_api_key)
    data = await _read_upload(file)
    text = await _ocr(data, request)
    result = await run_in_threadpool(get_normalizer().normalize_with_meta, text, bank_hint)
    return ParseResponse(text=text, slip=_slip_out(result), meta=_meta_out(result))
