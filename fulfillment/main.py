import logging
import os
import stripe
from pathlib import Path
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Header, HTTPException

from fulfillment.routes import router
from fulfillment.database import SessionLocal, init_db
from fulfillment.refunds import handle_event

# Force-load .env (Windows-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Order Fulfillment Service")

app.include_router(router)

init_db()


@app.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload,
            stripe_signature,
            os.getenv("STRIPE_WEBHOOK_SECRET")
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    with SessionLocal() as db:
        handle_event(db, event)

    return {"ok": True}
