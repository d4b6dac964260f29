import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# G-code 엔진 라우터 import
from gcode_engine.api.router import router as gcode_router

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="G-code Analysis Engine", version="1.0.0")

# G-code 엔진 API 라우터 등록
app.include_router(gcode_router)

# CORS 설정 (브라우저 패널에서 직접 호출)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiResponse(BaseModel):
    status: str
    data: Optional[Any] = None
    error: Optional[str] = None


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "error": str(exc.detail)},
    )


@app.get("/health", response_model=ApiResponse)
async def health():
    return ApiResponse(status="ok", data={"service": "alive"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=7000)
