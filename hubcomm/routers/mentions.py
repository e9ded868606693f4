"""Mentions router: server-side decode/render for clients without the codec."""

from fastapi import APIRouter, Query

from hubcomm.services.mentions import decode_mentions, render_for_display

router = APIRouter(prefix="/mentions", tags=["mentions"])


@router.get("/decode")
async def decode(text: str = Query(..., max_length=10_000)):
    return {
        "mentions": [
            {"display_name": m.display_name, "user_id": m.user_id, "start": m.start, "end": m.end}
            for m in decode_mentions(text)
        ]
    }


@router.get("/render")
async def render(text: str = Query(..., max_length=10_000)):
    return {"text": render_for_display(text)}
