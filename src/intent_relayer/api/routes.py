from fastapi import APIRouter, HTTPException, Request

from intent_relayer.api.models import SignedIntentRequest, StatusResponse, SubmitResponse

router = APIRouter(tags=["Relayer"])


def get_relayer(request: Request):
    """Dependency to retrieve the IntentRelayer from app state."""
    relayer = getattr(request.app.state, "relayer", None)
    if relayer is None:
        raise HTTPException(status_code=503, detail="relayer not initialized")
    return relayer


@router.get("/status", response_model=StatusResponse)
async def status(request: Request):
    """Sequence counter, registry sizes and loop state of the relayer."""
    return StatusResponse(**get_relayer(request).status())


@router.post("/intents/signed", response_model=SubmitResponse, status_code=202)
async def submit_signed_intent(request: Request, req: SignedIntentRequest):
    """
    Queue a signed intent for the next relayer cycle.

    The intent is only checked for encodability here. Signature, nonce and
    deadline are validated against the ledger right before execution.
    """
    relayer = get_relayer(request)
    intent_hash = relayer.submit_signed(req.to_intent(), req.signature)
    return SubmitResponse(intent_hash=intent_hash)
