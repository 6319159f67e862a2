from fastapi import HTTPException, Request

from ..service import FiscalAdvisor


def get_advisor(request: Request) -> FiscalAdvisor:
    advisor = getattr(request.app.state, "advisor", None)
    if advisor is None:
        raise HTTPException(status_code=503, detail="Advisor not initialized")
    return advisor
