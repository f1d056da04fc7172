# unisocial/routers/follows.py

from fastapi import APIRouter, Depends, Query, status

from unisocial.common.deps import get_current_user, get_relationship_service
from unisocial.common.pagination import Pagination, get_pagination
from unisocial.core.config import settings
from unisocial.models.user import User
from unisocial.services.relationship_service import RelationshipService

router = APIRouter()


@router.get("/suggestions")
def get_follow_suggestions(
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    suggestions = service.follow_suggestions(current_user.id, min(limit, settings.MAX_PAGE_SIZE))
    return {"message": "Follow suggestions retrieved successfully", "data": {"suggestions": suggestions}}


@router.post("/{user_id}/follow", status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.follow_user(current_user.id, user_id)
    return {"message": "Successfully followed user.", "data": outcome.model_dump()}


@router.delete("/{user_id}/follow")
async def unfollow_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    outcome = await service.unfollow_user(current_user.id, user_id)
    return {"message": "Successfully unfollowed user.", "data": outcome.model_dump()}


@router.get("/{user_id}/followers")
def get_followers(
    user_id: int,
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    return {"message": "Followers retrieved successfully", "data": service.list_followers(user_id, pagination)}


@router.get("/{user_id}/following")
def get_following(
    user_id: int,
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    return {"message": "Following list retrieved successfully", "data": service.list_following(user_id, pagination)}


@router.get("/{user_id}/is-following")
def is_following(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    result = service.is_following(current_user.id, user_id)
    return {"message": "Following status checked successfully", "data": {"isFollowing": result}}


@router.get("/{user_id}/mutual")
def get_mutual_follows(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: RelationshipService = Depends(get_relationship_service),
):
    mutuals = service.mutual_follows(current_user.id, user_id)
    return {"message": "Mutual followers retrieved successfully", "data": {"mutuals": mutuals}}
