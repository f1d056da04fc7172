# unisocial/services/relationship_service.py

import enum
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy import select, delete, func, or_, and_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from unisocial.common.pagination import Pagination, pagination_metadata
from unisocial.core.exceptions import (
    UniSocialError,
    InvalidArgumentError,
    NotFoundError,
    UserNotFoundError,
    ConflictError,
    TransactionAbortedError,
    InternalError,
)
from unisocial.models.block import UserBlock
from unisocial.models.follow import Follow
from unisocial.models.friend import FriendEdge, FriendRequest, FriendStatus
from unisocial.models.user import User, UserSummary, utcnow
from unisocial.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

# ids are stored as signed 64-bit integers
MAX_ID = 2 ** 63 - 1


class RelationshipState(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"
    FOLLOWING = "following"


class RelationshipOutcome(BaseModel):
    state: RelationshipState
    notified_peer: bool = False
    conversation_id: Optional[int] = None


class RelationshipService:
    """
    Friend requests, friendships, blocking and follows between two users.

    Every mutating operation runs in a single transaction on ``db``: the
    preconditions are read and the writes are made inside it, and it either
    commits as a whole or is rolled back. The session is synchronous, so the
    async methods hand the transaction to the threadpool and keep only the
    fan-out on the event loop. Only after a commit is the other
    party notified through ``presence``, an object exposing
    ``async notify(user_id, event, payload) -> bool`` and
    ``is_online(user_id) -> bool`` (see ``ConnectionManager``).
    """

    def __init__(
        self,
        db: Session,
        presence: Any = None,
        conversations: Optional[ConversationService] = None,
    ):
        self.db = db
        self.presence = presence
        self.conversations = conversations or ConversationService(db)

    # ------------------------------------------------------------------
    # Operations (transaction in the threadpool, fan-out on the loop)
    # ------------------------------------------------------------------

    async def send_friend_request(self, actor_id: int, target_id: int) -> RelationshipOutcome:
        await run_in_threadpool(self._record_friend_request, actor_id, target_id)
        notified = await self._notify(target_id, "friendRequestReceived", {"userId": actor_id})
        return RelationshipOutcome(state=RelationshipState.PENDING, notified_peer=notified)

    async def accept_friend_request(self, actor_id: int, requester_id: int) -> RelationshipOutcome:
        conversation_id = await run_in_threadpool(self._record_acceptance, actor_id, requester_id)
        notified = await self._notify(
            requester_id,
            "friendRequestAccepted",
            {"userId": actor_id, "conversationId": conversation_id},
        )
        return RelationshipOutcome(
            state=RelationshipState.ACCEPTED,
            notified_peer=notified,
            conversation_id=conversation_id,
        )

    async def reject_friend_request(self, actor_id: int, requester_id: int) -> RelationshipOutcome:
        await run_in_threadpool(self._record_rejection, actor_id, requester_id)
        return RelationshipOutcome(state=RelationshipState.NONE)

    async def remove_friend(self, actor_id: int, peer_id: int) -> RelationshipOutcome:
        conversation_id = await run_in_threadpool(self._record_removal, actor_id, peer_id)
        notified = await self._notify(peer_id, "friendRemoved", {"userId": actor_id})
        return RelationshipOutcome(
            state=RelationshipState.NONE,
            notified_peer=notified,
            conversation_id=conversation_id,
        )

    async def block_user(self, actor_id: int, peer_id: int) -> RelationshipOutcome:
        await run_in_threadpool(self._record_block, actor_id, peer_id)
        return RelationshipOutcome(state=RelationshipState.BLOCKED)

    async def unblock_user(self, actor_id: int, peer_id: int) -> RelationshipOutcome:
        state, conversation_id = await run_in_threadpool(self._record_unblock, actor_id, peer_id)
        return RelationshipOutcome(state=state, conversation_id=conversation_id)

    async def follow_user(self, actor_id: int, target_id: int) -> RelationshipOutcome:
        await run_in_threadpool(self._record_follow, actor_id, target_id)
        notified = await self._notify(target_id, "newFollower", {"userId": actor_id})
        return RelationshipOutcome(state=RelationshipState.FOLLOWING, notified_peer=notified)

    async def unfollow_user(self, actor_id: int, target_id: int) -> RelationshipOutcome:
        await run_in_threadpool(self._record_unfollow, actor_id, target_id)
        return RelationshipOutcome(state=RelationshipState.NONE)

    def _record_friend_request(self, actor_id: int, target_id: int):
        self._validate_ids(actor_id, target_id)
        if actor_id == target_id:
            raise InvalidArgumentError("You cannot send a friend request to yourself", field="recipientId")

        with self._unit_of_work("send friend request"):
            self._get_user(actor_id)
            self._get_user(target_id)

            edge = self._edge(actor_id, target_id)
            if edge is not None:
                if edge.status == FriendStatus.BLOCKED.value:
                    raise ConflictError("Friend requests are not possible between these users")
                raise ConflictError("Users are already friends")
            if self._request(target_id, actor_id) is not None:
                raise ConflictError("Friend request already sent")
            if self._request(actor_id, target_id) is not None:
                raise ConflictError("This user has already sent you a friend request")

            self.db.add(FriendRequest(recipient_id=target_id, sender_id=actor_id, created_at=utcnow()))

        logger.info("User %s sent a friend request to user %s", actor_id, target_id)

    def _record_acceptance(self, actor_id: int, requester_id: int) -> int:
        """
        Consume the request from ``requester_id`` and make both users friends.

        The request row is claimed with a conditional delete, so of two racing
        accept/reject calls only one sees it; the other gets NotFound and
        writes nothing. The DM conversation is created in the same
        transaction and disappears with it on rollback.
        """
        self._validate_ids(actor_id, requester_id)
        if actor_id == requester_id:
            raise InvalidArgumentError("You cannot accept a friend request from yourself", field="senderId")

        with self._unit_of_work("accept friend request"):
            self._get_user(requester_id)

            claimed = self.db.execute(
                delete(FriendRequest).where(
                    FriendRequest.recipient_id == actor_id,
                    FriendRequest.sender_id == requester_id,
                )
            ).rowcount
            if not claimed:
                raise NotFoundError("Friend request not found", "FriendRequest", requester_id)

            if self._edge(actor_id, requester_id) is not None:
                raise ConflictError("Users are already friends")

            conversation = self.conversations.create_direct_conversation(actor_id, requester_id)
            conversation_id = conversation.id
            now = utcnow()
            self.db.add_all([
                FriendEdge(
                    user_id=actor_id,
                    peer_id=requester_id,
                    status=FriendStatus.ACCEPTED.value,
                    conversation_id=conversation_id,
                    created_at=now,
                ),
                FriendEdge(
                    user_id=requester_id,
                    peer_id=actor_id,
                    status=FriendStatus.ACCEPTED.value,
                    conversation_id=conversation_id,
                    created_at=now,
                ),
            ])

        logger.info(
            "User %s accepted the friend request from user %s (conversation %s)",
            actor_id, requester_id, conversation_id,
        )
        return conversation_id

    def _record_rejection(self, actor_id: int, requester_id: int):
        # Not idempotent: a second reject finds nothing and fails
        self._validate_ids(actor_id, requester_id)
        if actor_id == requester_id:
            raise InvalidArgumentError("You cannot reject a friend request from yourself", field="senderId")

        with self._unit_of_work("reject friend request"):
            removed = self.db.execute(
                delete(FriendRequest).where(
                    FriendRequest.recipient_id == actor_id,
                    FriendRequest.sender_id == requester_id,
                )
            ).rowcount
            if not removed:
                raise ConflictError("Friend request not found")

        logger.info("User %s rejected the friend request from user %s", actor_id, requester_id)

    def _record_removal(self, actor_id: int, peer_id: int) -> Optional[int]:
        self._validate_ids(actor_id, peer_id)
        if actor_id == peer_id:
            raise InvalidArgumentError("You cannot remove yourself", field="friendId")

        with self._unit_of_work("remove friend"):
            self._get_user(peer_id)

            mine = self._edge(actor_id, peer_id)
            theirs = self._edge(peer_id, actor_id)
            if not self._both_accepted(mine, theirs):
                raise ConflictError("Users are not friends")

            conversation_id = mine.conversation_id or theirs.conversation_id
            if conversation_id is None:
                conversation = self.conversations.get_direct_conversation(actor_id, peer_id)
                conversation_id = conversation.id if conversation else None
            self.conversations.close_direct_conversation(conversation_id)

            self.db.delete(mine)
            self.db.delete(theirs)

        logger.info("User %s removed user %s from friends", actor_id, peer_id)
        return conversation_id

    def _record_block(self, actor_id: int, peer_id: int):
        """
        Put the pair's friend edges into ``blocked`` with ``blocked_by=actor``.

        Works with or without an existing friendship. Pending requests in
        either direction are dropped; follow rows are left alone.
        """
        self._validate_ids(actor_id, peer_id)
        if actor_id == peer_id:
            raise InvalidArgumentError("You cannot block yourself", field="userId")

        with self._unit_of_work("block user"):
            self._get_user(peer_id)

            mine = self._edge(actor_id, peer_id)
            theirs = self._edge(peer_id, actor_id)
            for edge in (mine, theirs):
                if edge is not None and edge.status == FriendStatus.BLOCKED.value:
                    raise ConflictError("User is already blocked", details={"blockedBy": edge.blocked_by})

            for user_id, other_id, edge in ((actor_id, peer_id, mine), (peer_id, actor_id, theirs)):
                if edge is None:
                    edge = FriendEdge(user_id=user_id, peer_id=other_id, created_at=utcnow())
                    self.db.add(edge)
                edge.status = FriendStatus.BLOCKED.value
                edge.blocked_by = actor_id

            self.db.execute(
                delete(FriendRequest).where(
                    or_(
                        and_(FriendRequest.recipient_id == actor_id, FriendRequest.sender_id == peer_id),
                        and_(FriendRequest.recipient_id == peer_id, FriendRequest.sender_id == actor_id),
                    )
                )
            )
            if self._block(actor_id, peer_id) is None:
                self.db.add(UserBlock(blocker_id=actor_id, blocked_id=peer_id, created_at=utcnow()))

        logger.info("User %s blocked user %s", actor_id, peer_id)

    def _record_unblock(self, actor_id: int, peer_id: int) -> Tuple[RelationshipState, Optional[int]]:
        """
        Only the blocker may unblock. A pair that had been friends (their
        edges still carry the DM conversation) goes back to ``accepted``;
        otherwise the edges are removed.
        """
        self._validate_ids(actor_id, peer_id)
        if actor_id == peer_id:
            raise InvalidArgumentError("You cannot unblock yourself", field="userId")

        with self._unit_of_work("unblock user"):
            self._get_user(peer_id)

            mine = self._edge(actor_id, peer_id)
            theirs = self._edge(peer_id, actor_id)
            if mine is None or mine.status != FriendStatus.BLOCKED.value:
                raise ConflictError("User is not blocked")
            if mine.blocked_by != actor_id:
                raise ConflictError(
                    "Only the user who blocked can unblock",
                    details={"blockedBy": mine.blocked_by},
                )

            conversation_id = mine.conversation_id or (theirs.conversation_id if theirs else None)
            if conversation_id is not None:
                if theirs is None:
                    theirs = FriendEdge(user_id=peer_id, peer_id=actor_id, created_at=mine.created_at)
                    self.db.add(theirs)
                for edge in (mine, theirs):
                    edge.status = FriendStatus.ACCEPTED.value
                    edge.blocked_by = None
                    edge.conversation_id = conversation_id
                state = RelationshipState.ACCEPTED
            else:
                self.db.delete(mine)
                if theirs is not None:
                    self.db.delete(theirs)
                state = RelationshipState.NONE

            self.db.execute(
                delete(UserBlock).where(UserBlock.blocker_id == actor_id, UserBlock.blocked_id == peer_id)
            )

        logger.info("User %s unblocked user %s (now %s)", actor_id, peer_id, state.value)
        return state, conversation_id

    def _record_follow(self, actor_id: int, target_id: int):
        self._validate_ids(actor_id, target_id)
        if actor_id == target_id:
            raise InvalidArgumentError("You cannot follow yourself", field="userId")

        with self._unit_of_work("follow user"):
            self._get_user(target_id)
            if self._follow(actor_id, target_id) is not None:
                raise ConflictError("Already following this user")
            self.db.add(Follow(follower_id=actor_id, followed_id=target_id, created_at=utcnow()))

        logger.info("User %s followed user %s", actor_id, target_id)

    def _record_unfollow(self, actor_id: int, target_id: int):
        self._validate_ids(actor_id, target_id)
        if actor_id == target_id:
            raise InvalidArgumentError("You cannot unfollow yourself", field="userId")

        with self._unit_of_work("unfollow user"):
            self._get_user(target_id)
            removed = self.db.execute(
                delete(Follow).where(Follow.follower_id == actor_id, Follow.followed_id == target_id)
            ).rowcount
            if not removed:
                raise ConflictError("Not following this user")

        logger.info("User %s unfollowed user %s", actor_id, target_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_followers(self, user_id: int, pagination: Pagination) -> Dict[str, Any]:
        self._validate_ids(user_id)
        self._get_user(user_id)
        total = self.db.scalar(
            select(func.count()).select_from(Follow).where(Follow.followed_id == user_id)
        )
        users = self.db.execute(
            select(User)
            .join(Follow, Follow.follower_id == User.id)
            .where(Follow.followed_id == user_id)
            .order_by(Follow.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        ).scalars().all()
        return {
            "followers": [self._summary(u) for u in users],
            "pagination": pagination_metadata(total, pagination),
        }

    def list_following(self, user_id: int, pagination: Pagination) -> Dict[str, Any]:
        self._validate_ids(user_id)
        self._get_user(user_id)
        total = self.db.scalar(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
        users = self.db.execute(
            select(User)
            .join(Follow, Follow.followed_id == User.id)
            .where(Follow.follower_id == user_id)
            .order_by(Follow.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        ).scalars().all()
        return {
            "following": [self._summary(u) for u in users],
            "pagination": pagination_metadata(total, pagination),
        }

    def list_friends(self, user_id: int, pagination: Pagination) -> Dict[str, Any]:
        self._validate_ids(user_id)
        self._get_user(user_id)
        condition = and_(FriendEdge.user_id == user_id, FriendEdge.status == FriendStatus.ACCEPTED.value)
        total = self.db.scalar(select(func.count()).select_from(FriendEdge).where(condition))
        rows = self.db.execute(
            select(FriendEdge, User)
            .join(User, User.id == FriendEdge.peer_id)
            .where(condition)
            .order_by(FriendEdge.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        ).all()
        return {
            "friends": [
                {
                    "user": self._summary(peer),
                    "conversationId": edge.conversation_id,
                    "since": edge.created_at,
                }
                for edge, peer in rows
            ],
            "pagination": pagination_metadata(total, pagination),
        }

    def list_friend_requests(self, user_id: int, pagination: Pagination) -> Dict[str, Any]:
        self._validate_ids(user_id)
        self._get_user(user_id)
        total = self.db.scalar(
            select(func.count()).select_from(FriendRequest).where(FriendRequest.recipient_id == user_id)
        )
        rows = self.db.execute(
            select(FriendRequest, User)
            .join(User, User.id == FriendRequest.sender_id)
            .where(FriendRequest.recipient_id == user_id)
            .order_by(FriendRequest.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        ).all()
        return {
            "requests": [
                {"user": self._summary(sender), "since": request.created_at}
                for request, sender in rows
            ],
            "pagination": pagination_metadata(total, pagination),
        }

    def list_blocked(self, user_id: int) -> List[Dict[str, Any]]:
        self._validate_ids(user_id)
        users = self.db.execute(
            select(User)
            .join(UserBlock, UserBlock.blocked_id == User.id)
            .where(UserBlock.blocker_id == user_id)
            .order_by(UserBlock.id)
        ).scalars().all()
        return [self._summary(u) for u in users]

    def is_following(self, actor_id: int, target_id: int) -> bool:
        self._validate_ids(actor_id, target_id)
        return self._follow(actor_id, target_id) is not None

    def mutual_follows(self, actor_id: int, target_id: int) -> List[Dict[str, Any]]:
        """Users the actor follows who also follow the target."""
        self._validate_ids(actor_id, target_id)
        self._get_user(target_id)
        mine = aliased(Follow)
        theirs = aliased(Follow)
        users = self.db.execute(
            select(User)
            .join(mine, mine.followed_id == User.id)
            .join(theirs, theirs.follower_id == User.id)
            .where(mine.follower_id == actor_id, theirs.followed_id == target_id)
            .order_by(mine.id)
        ).scalars().all()
        return [self._summary(u) for u in users]

    def follow_suggestions(self, actor_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        self._validate_ids(actor_id)
        follower_counts = (
            select(Follow.followed_id, func.count().label("followers"))
            .group_by(Follow.followed_id)
            .subquery()
        )
        followers = func.coalesce(follower_counts.c.followers, 0)
        rows = self.db.execute(
            select(User, followers)
            .outerjoin(follower_counts, follower_counts.c.followed_id == User.id)
            .where(
                User.id != actor_id,
                User.id.not_in(select(Follow.followed_id).where(Follow.follower_id == actor_id)),
                User.id.not_in(select(UserBlock.blocked_id).where(UserBlock.blocker_id == actor_id)),
            )
            .order_by(followers.desc(), User.id)
            .limit(limit)
        ).all()
        return [{**self._summary(user), "followersCount": count} for user, count in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, action: str):
        """Commit on success; roll back and translate store errors otherwise."""
        try:
            yield
            self.db.commit()
        except UniSocialError as e:
            self.db.rollback()
            logger.debug("Rejected %s: %s", action, e.message)
            raise
        except IntegrityError as e:
            # a concurrent call inserted the same pair first
            self.db.rollback()
            logger.info("Concurrent change while trying to %s: %s", action, e.orig)
            raise ConflictError(f"Could not {action}: the relationship changed concurrently") from e
        except OperationalError as e:
            self.db.rollback()
            logger.warning("Transaction aborted while trying to %s: %s", action, e.orig)
            raise TransactionAbortedError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to %s", action, exc_info=True)
            raise InternalError(f"Failed to {action}") from e
        except Exception as e:
            self.db.rollback()
            logger.error("Unexpected failure while trying to %s", action, exc_info=True)
            raise InternalError(f"Failed to {action}") from e

    async def _notify(self, user_id: int, event: str, payload: Dict[str, Any]) -> bool:
        if self.presence is None:
            return False
        try:
            return bool(await self.presence.notify(user_id, event, payload))
        except Exception:
            logger.warning("Fan-out of %s to user %s failed", event, user_id, exc_info=True)
            return False

    @staticmethod
    def _validate_ids(*ids: Any):
        for value in ids:
            if isinstance(value, bool) or not isinstance(value, int) or not 0 < value <= MAX_ID:
                raise InvalidArgumentError(f"Invalid user ID: {value!r}")

    @staticmethod
    def _both_accepted(mine: Optional[FriendEdge], theirs: Optional[FriendEdge]) -> bool:
        return (
            mine is not None
            and theirs is not None
            and mine.status == FriendStatus.ACCEPTED.value
            and theirs.status == FriendStatus.ACCEPTED.value
        )

    def _get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _edge(self, user_id: int, peer_id: int) -> Optional[FriendEdge]:
        return self.db.execute(
            select(FriendEdge).where(FriendEdge.user_id == user_id, FriendEdge.peer_id == peer_id)
        ).scalar_one_or_none()

    def _request(self, recipient_id: int, sender_id: int) -> Optional[FriendRequest]:
        return self.db.execute(
            select(FriendRequest).where(
                FriendRequest.recipient_id == recipient_id,
                FriendRequest.sender_id == sender_id,
            )
        ).scalar_one_or_none()

    def _follow(self, follower_id: int, followed_id: int) -> Optional[Follow]:
        return self.db.execute(
            select(Follow).where(Follow.follower_id == follower_id, Follow.followed_id == followed_id)
        ).scalar_one_or_none()

    def _block(self, blocker_id: int, blocked_id: int) -> Optional[UserBlock]:
        return self.db.execute(
            select(UserBlock).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
        ).scalar_one_or_none()

    def _summary(self, user: User) -> Dict[str, Any]:
        is_online = bool(self.presence is not None and self.presence.is_online(user.id))
        return UserSummary(
            id=user.id,
            username=user.username,
            name=user.name or "",
            profile_picture=user.profile_picture or "",
            is_online=is_online,
        ).model_dump()
