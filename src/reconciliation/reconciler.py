"""Reconciliation engine: extracted candidates -> stored records.

Runs in a fixed order: submolts, agents, posts, comments, then agent
aggregate recomputation. Posts and comments depend on the id maps built by
the earlier steps, and aggregates depend on the post and comment writes.
"""

import logging
import time
from datetime import datetime
from typing import Iterable, Optional, Tuple

from src.database.models import Agent, Comment, Post, Submolt
from src.database.operations import DatabaseOperations, StorageError
from src.processing.text_metrics import combine_post_text, compute_text_metrics
from src.reconciliation.context import ReconciliationContext, ReconciliationStats
from src.scraper.candidates import (
    AgentCandidate,
    CommentCandidate,
    ExtractionResult,
    PostCandidate,
    SubmoltCandidate,
)
from src.scraper.parsers import normalize_name
from src.scraper.timestamps import to_iso

logger = logging.getLogger(__name__)


class EntityReconciler:
    """Shared upsert plumbing for the per-entity reconcilers."""

    def __init__(self, db_ops: DatabaseOperations):
        self.db = db_ops

    def _upsert(self, entity) -> Tuple[str, bool]:
        """Upsert an entity and return its stored id and whether it was new."""
        entity_type = type(entity)
        inserted = self.db.upsert(entity)
        natural_key = self.db.NATURAL_KEY_MAPPING[entity_type]
        pk = self.db.PK_MAPPING[entity_type]
        row = self.db.get_by_natural_key(entity_type, getattr(entity, natural_key))
        return (row[pk] if row else getattr(entity, pk)), inserted


class SubmoltReconciler(EntityReconciler):
    """Step 1: submolts keyed on name."""

    def write(
        self,
        name: str,
        context: ReconciliationContext,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        member_count: Optional[int] = None,
    ) -> Tuple[str, bool]:
        submolt = Submolt.from_scraped_data(
            name,
            display_name=display_name,
            description=description,
            member_count=member_count,
            seen_at=context.seen_at,
        )
        id_submolt, inserted = self._upsert(submolt)
        context.submolt_ids[submolt.name] = id_submolt
        context.stats.submolts.record(inserted)
        return id_submolt, inserted

    def reconcile(self, candidates: Iterable[SubmoltCandidate], context: ReconciliationContext) -> None:
        for candidate in candidates:
            try:
                self.write(
                    candidate.name,
                    context,
                    display_name=candidate.display_name,
                    description=candidate.description,
                    member_count=candidate.member_count,
                )
            except StorageError as e:
                context.stats.submolts.failed += 1
                logger.error("Failed to write submolt %s: %s", candidate.name, e)

    def upsert_or_create(self, name: Optional[str], context: ReconciliationContext) -> Optional[str]:
        """Resolve a submolt name to its id, creating the submolt if unseen.

        Returns:
            Storage id, or None when the name is empty or the write failed
        """
        name = normalize_name(name)
        if name is None:
            return None
        if name in context.submolt_ids:
            return context.submolt_ids[name]
        try:
            id_submolt, inserted = self.write(name, context)
        except StorageError as e:
            context.stats.submolts.failed += 1
            logger.error("Failed to create referenced submolt %s: %s", name, e)
            return None
        if inserted:
            context.stats.submolts_completed += 1
            logger.debug("Created submolt %s from a post reference", name)
        return id_submolt


class AgentReconciler(EntityReconciler):
    """Step 2: agents keyed on lowercased username."""

    def write(
        self,
        username: str,
        context: ReconciliationContext,
        display_name: Optional[str] = None,
    ) -> Tuple[str, bool]:
        agent = Agent.from_scraped_data(username, display_name=display_name, seen_at=context.seen_at)
        id_agent, inserted = self._upsert(agent)
        context.agent_ids[agent.username] = id_agent
        context.touched_agents.add(id_agent)
        context.stats.agents.record(inserted)
        return id_agent, inserted

    def reconcile(self, candidates: Iterable[AgentCandidate], context: ReconciliationContext) -> None:
        for candidate in candidates:
            try:
                self.write(candidate.username, context, display_name=candidate.display_name)
            except StorageError as e:
                context.stats.agents.failed += 1
                logger.error("Failed to write agent %s: %s", candidate.username, e)

    def upsert_or_create(self, username: Optional[str], context: ReconciliationContext) -> Optional[str]:
        """Resolve a username to its id, creating the agent if unseen.

        Returns:
            Storage id, or None when the username is empty or the write failed
        """
        username = normalize_name(username)
        if username is None:
            return None
        if username in context.agent_ids:
            return context.agent_ids[username]
        try:
            id_agent, inserted = self.write(username, context)
        except StorageError as e:
            context.stats.agents.failed += 1
            logger.error("Failed to create referenced agent %s: %s", username, e)
            return None
        if inserted:
            context.stats.agents_completed += 1
            logger.debug("Created agent %s from a reference", username)
        return id_agent


class PostReconciler(EntityReconciler):
    """Step 3: posts keyed on external_id, full overwrite on update."""

    def __init__(
        self,
        db_ops: DatabaseOperations,
        agents: AgentReconciler,
        submolts: SubmoltReconciler,
    ):
        super().__init__(db_ops)
        self.agents = agents
        self.submolts = submolts

    def reconcile_one(self, candidate: PostCandidate, context: ReconciliationContext) -> str:
        id_agent = self.agents.upsert_or_create(candidate.agent_reference, context)
        id_submolt = self.submolts.upsert_or_create(candidate.submolt_reference, context)

        # A re-scrape may attribute the post to another agent; both need recounting.
        previous = self.db.get_by_natural_key(Post, candidate.external_id)
        if previous and previous.get("id_agent"):
            context.touched_agents.add(previous["id_agent"])

        post = Post.from_scraped_data(
            external_id=candidate.external_id,
            title=candidate.title,
            metrics=compute_text_metrics(combine_post_text(candidate.title, candidate.content)),
            content=candidate.content,
            url=candidate.url,
            upvotes=candidate.upvotes,
            downvotes=candidate.downvotes,
            comment_count=candidate.comment_count,
            posted_at=to_iso(candidate.posted_at),
            id_agent=id_agent,
            id_submolt=id_submolt,
            scraped_at=context.seen_at,
        )
        id_post, inserted = self._upsert(post)
        context.post_ids[post.external_id] = id_post
        context.stats.posts.record(inserted)
        return id_post

    def reconcile(self, candidates: Iterable[PostCandidate], context: ReconciliationContext) -> None:
        for candidate in candidates:
            try:
                self.reconcile_one(candidate, context)
            except StorageError as e:
                context.stats.posts.failed += 1
                logger.error("Failed to write post %s: %s", candidate.external_id, e)


class CommentReconciler(EntityReconciler):
    """Step 3b: comments keyed on a synthesized external id."""

    def __init__(self, db_ops: DatabaseOperations, agents: AgentReconciler):
        super().__init__(db_ops)
        self.agents = agents

    def resolve_post(self, external_id: Optional[str], context: ReconciliationContext) -> Optional[str]:
        """Find the stored post id for a post external id (may stay unresolved)."""
        if not external_id:
            return None
        if external_id in context.post_ids:
            return context.post_ids[external_id]
        row = self.db.get_by_natural_key(Post, external_id)
        if row is None:
            return None
        context.post_ids[external_id] = row["id_post"]
        return row["id_post"]

    def reconcile_one(self, candidate: CommentCandidate, context: ReconciliationContext) -> str:
        id_post = self.resolve_post(candidate.post_reference, context)
        id_agent = self.agents.upsert_or_create(candidate.agent_reference, context)
        metrics = compute_text_metrics(candidate.content)
        comment = Comment.from_scraped_data(
            content=candidate.content,
            metrics=metrics,
            post_reference=candidate.post_reference,
            agent_reference=normalize_name(candidate.agent_reference),
            id_post=id_post,
            id_agent=id_agent,
            upvotes=candidate.upvotes,
            posted_at=to_iso(candidate.posted_at),
            scraped_at=context.seen_at,
        )
        id_comment, inserted = self._upsert(comment)
        context.stats.comments.record(inserted)
        return id_comment

    def reconcile(self, candidates: Iterable[CommentCandidate], context: ReconciliationContext) -> None:
        for candidate in candidates:
            try:
                self.reconcile_one(candidate, context)
            except StorageError as e:
                context.stats.comments.failed += 1
                logger.error("Failed to write comment by %s: %s", candidate.agent_reference, e)


class Reconciler:
    """Runs one reconciliation pass over an extraction result."""

    def __init__(self, db_ops: DatabaseOperations):
        self.db = db_ops
        self.submolts = SubmoltReconciler(db_ops)
        self.agents = AgentReconciler(db_ops)
        self.posts = PostReconciler(db_ops, self.agents, self.submolts)
        self.comments = CommentReconciler(db_ops, self.agents)

    def recompute_aggregates(self, context: ReconciliationContext) -> None:
        """Step 4: recount posts and comments from stored rows for touched agents."""
        for id_agent in sorted(context.touched_agents):
            try:
                post_count = self.db.count_by(Post, "id_agent", id_agent)
                comment_count = self.db.count_by(Comment, "id_agent", id_agent)
                self.db.update(Agent, id_agent, {"post_count": post_count, "comment_count": comment_count})
                context.stats.aggregates_recomputed += 1
            except StorageError as e:
                context.stats.aggregates_failed += 1
                logger.error("Failed to recompute aggregates for %s: %s", id_agent, e)

    def reconcile(
        self,
        extraction: ExtractionResult,
        now: Optional[datetime] = None,
    ) -> ReconciliationStats:
        """Reconcile all four candidate lists against storage.

        Args:
            extraction: Candidates from one scrape cycle
            now: Ingestion time (defaults to the current UTC time)

        Returns:
            ReconciliationStats for this run
        """
        start = time.monotonic()
        context = ReconciliationContext(now=now) if now else ReconciliationContext()

        self.submolts.reconcile(extraction.submolts, context)
        self.agents.reconcile(extraction.agents, context)
        self.posts.reconcile(extraction.posts, context)
        self.comments.reconcile(extraction.comments, context)
        self.recompute_aggregates(context)

        stats = context.stats
        stats.processing_time_seconds = round(time.monotonic() - start, 3)
        logger.info(
            "Reconciled submolts=%d agents=%d posts=%d comments=%d (failed: %d/%d/%d/%d) in %.2fs",
            stats.submolts.reconciled,
            stats.agents.reconciled,
            stats.posts.reconciled,
            stats.comments.reconciled,
            stats.submolts.failed,
            stats.agents.failed,
            stats.posts.failed,
            stats.comments.failed,
            stats.processing_time_seconds,
        )
        return stats
