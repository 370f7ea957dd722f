"""Bank server: question bank JSON files over HTTP (API + static /bank)."""
import logging
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from examportal.sources import API_PATH, STATIC_PATH, load_bank_directory

load_dotenv()

logger = logging.getLogger(__name__)

BANK_DIR = Path(os.getenv("EXAM_PORTAL_BANK_DIR", "bank"))


def create_app(bank_dir: Optional[Union[str, Path]] = None) -> FastAPI:
    """Build the app over a bank directory. Files are re-read on every request."""
    bank_dir = Path(bank_dir or BANK_DIR)
    app = FastAPI(title="Exam Portal Bank Server", version="1.0.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])

    @app.get(API_PATH)
    def list_question_banks():
        banks = load_bank_directory(bank_dir)
        logger.info(f"Serving {len(banks)} banks from {bank_dir}")
        return [b.to_dict() for b in banks]

    @app.get(API_PATH + "/{bank_id}")
    def get_question_bank(bank_id: str):
        for bank in load_bank_directory(bank_dir):
            if bank.id == bank_id:
                return bank.to_dict()
        raise HTTPException(status_code=404, detail=f"Question bank {bank_id} not found")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.mount(STATIC_PATH, StaticFiles(directory=str(bank_dir), check_dir=False), name="bank")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    uvicorn.run(app, host=os.getenv("EXAM_PORTAL_HOST", "127.0.0.1"), port=int(os.getenv("EXAM_PORTAL_PORT", "8000")))
