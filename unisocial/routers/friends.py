# unisocial/routers/friends.py

from fastapi import APIRouter, Depends, status

from unisocial.common.deps import get_current_user, get_relationship_service
from unisocial.common.pagination import Pagination, get_pagination
from unisocial.models.user import User
from unisocial.services.relationship_service import RelationshipService

router = APIRouter()


# --- Friend requests ---

@router.post("/requests/{recipient_id}", status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    recipient_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.send_friend_request(current_user.id, recipient_id)
    return {"message": "Friend request sent successfully", "data": outcome.model_dump()}


@router.get("/requests")
def get_friend_requests(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    result = service.list_friend_requests(current_user.id, pagination)
    return {"message": "Friend requests retrieved successfully", "data": result}


@router.post("/requests/{sender_id}/accept")
async def accept_friend_request(
    sender_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.accept_friend_request(current_user.id, sender_id)
    return {"message": "Friend request accepted successfully", "data": outcome.model_dump()}


@router.delete("/requests/{sender_id}")
async def reject_friend_request(
    sender_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.reject_friend_request(current_user.id, sender_id)
    return {"message": "Friend request rejected successfully", "data": outcome.model_dump()}


# --- Friends ---

@router.get("")
def get_friends(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    result = service.list_friends(current_user.id, pagination)
    return {"message": "Friends retrieved successfully", "data": result}


@router.delete("/{friend_id}")
async def remove_friend(
    friend_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.remove_friend(current_user.id, friend_id)
    return {"message": "Friend and conversation deleted successfully", "data": outcome.model_dump()}


# --- Blocking ---

@router.get("/blocked")
def get_blocked_users(
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    return {"message": "Blocked users retrieved successfully", "data": service.list_blocked(current_user.id)}


@router.post("/block/{user_id}")
async def block_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.block_user(current_user.id, user_id)
    return {"message": "User blocked successfully", "data": outcome.model_dump()}


@router.delete("/block/{user_id}")
async def unblock_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.unblock_user(current_user.id, user_id)
    return {"message": "User unblocked successfully", "data": outcome.model_dump()}
