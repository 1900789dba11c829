from fastapi import APIRouter, Depends, Response

from proposal_workflow.api.deps import (
    get_current_user,
    get_proposal_service,
    get_state_machine,
)
from proposal_workflow.core.exceptions import ForbiddenError
from proposal_workflow.models.user import User
from proposal_workflow.schemas.proposal import ProposalCreate, ProposalUpdate, ProposalResponse
from proposal_workflow.services.proposal_service import ProposalService
from proposal_workflow.services.state_machine import ProposalStateMachine

router = APIRouter(prefix="/proposals", tags=["Proposals"])


@router.post("", response_model=ProposalResponse, status_code=201)
async def create_proposal(
    body: ProposalCreate,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service),
):
    """Create a draft proposal owned by the caller."""
    proposal = await service.create_draft(current_user, **body.model_dump())
    return ProposalResponse.model_validate(proposal)


@router.get("/{proposal_uuid}", response_model=ProposalResponse)
async def get_proposal(
    proposal_uuid: str,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service),
):
    proposal = await service.get_by_uuid(proposal_uuid)
    if proposal.user_id != current_user.id and not current_user.is_reviewer:
        raise ForbiddenError("You can only view your own proposals")
    return ProposalResponse.model_validate(proposal)


@router.put("/{proposal_uuid}", response_model=ProposalResponse)
async def save_proposal(
    proposal_uuid: str,
    body: ProposalUpdate,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service),
):
    """Save draft fields. Only drafts and proposals sent back for revision are editable."""
    proposal = await service.save_draft(
        proposal_uuid,
        current_user.id,
        **body.model_dump(exclude_unset=True),
    )
    return ProposalResponse.model_validate(proposal)


@router.post("/{proposal_uuid}/submit", response_model=ProposalResponse)
async def submit_proposal(
    proposal_uuid: str,
    current_user: User = Depends(get_current_user),
    state_machine: ProposalStateMachine = Depends(get_state_machine),
):
    """Submit for review. Submitting an already pending proposal returns it unchanged."""
    proposal = await state_machine.submit(proposal_uuid, current_user.id)
    return ProposalResponse.model_validate(proposal)


@router.delete("/{proposal_uuid}", status_code=204)
async def delete_proposal(
    proposal_uuid: str,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service),
):
    await service.soft_delete(proposal_uuid, current_user.id)
    return Response(status_code=204)
