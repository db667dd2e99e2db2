from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from api.deps import get_active_user, get_current_user, get_db_session
from api.schemas import GeneratePromptsRequest, PromptSetCreate, PromptSetUpdate, changes
from tracking import resources
from tracking.prompt_generator import generate_prompts

router = APIRouter(prefix="/api/prompt-sets", tags=["prompt-sets"])


@router.get("")
def list_prompt_sets(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return [resources.serialize_prompt_set(p) for p in resources.list_prompt_sets(session, user)]


@router.post("")
def create_prompt_set(
    body: PromptSetCreate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    prompt_set = resources.create_prompt_set(
        session, user, body.name, body.prompts, body.intentCategories
    )
    return resources.serialize_prompt_set(prompt_set)


@router.post("/generate")
async def generate(body: GeneratePromptsRequest, user: SessionUser = Depends(get_active_user)):
    return await generate_prompts(body.keyword, body.categories)


@router.get("/{prompt_set_id}")
def get_prompt_set(
    prompt_set_id: str,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    return resources.serialize_prompt_set(resources.get_prompt_set(session, user, prompt_set_id))


@router.patch("/{prompt_set_id}")
def update_prompt_set(
    prompt_set_id: str,
    body: PromptSetUpdate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    prompt_set = resources.update_prompt_set(session, user, prompt_set_id, changes(body))
    return resources.serialize_prompt_set(prompt_set)


@router.delete("/{prompt_set_id}")
def delete_prompt_set(
    prompt_set_id: str,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    resources.delete_prompt_set(session, user, prompt_set_id)
    return {"success": True}
