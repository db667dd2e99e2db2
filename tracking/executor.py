"""Execution of tracking runs against every enabled provider."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog
from openai import AsyncOpenAI

from core.config import Config, get_config
from core.errors import NotFoundError, ProviderError
from database.connection import DatabaseConnection
from database.models import TrackingConfig, TrackingResult, TrackingRun
from notifications.email import EmailSender, get_email_sender
from providers.base import BaseProvider
from providers.registry import build_providers
from tracking.favicons import fetch_favicons_for_domains
from tracking.scheduler import compute_next_run
from tracking.scoring import (
    compute_visibility_score,
    count_mentions,
    extract_citation_domains,
    extract_urls_from_text,
    strip_markdown,
)
from tracking.sentiment import analyze_sentiment

logger = structlog.get_logger(__name__)

FINISHED_STATUSES = ("completed", "failed")


@dataclass
class RunTarget:
    """Everything a run needs, read once before execution starts."""

    run_id: str
    config_id: str
    interval: Optional[str]
    domain_name: str
    domain_url: str
    prompts: List[str]


class RunExecutor:
    """Runs every prompt of a tracking run against every provider.

    Prompts are processed in batches. Within a batch all prompts run
    concurrently and each prompt fans out to all providers at once. A
    provider failure becomes an error result row and never fails the run.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        providers: Optional[Dict[str, BaseProvider]] = None,
        email_sender: Optional[EmailSender] = None,
        config: Optional[Config] = None,
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize executor.

        Args:
            db: Database connection
            providers: Providers by name (defaults to the configured ones)
            email_sender: Email sender for run notifications
            config: Configuration (defaults to the global one)
            openai_client: OpenAI client override for sentiment analysis
        """
        self.db = db
        self.config = config or get_config()
        self.providers = providers if providers is not None else build_providers(self.config)
        self.email_sender = email_sender or get_email_sender()
        self.openai_client = openai_client
        self.batch_size = max(1, self.config.prompt_batch_size)

    def _load_target(self, run_id: str) -> Optional[RunTarget]:
        """Mark the run running and read what it needs.

        Returns None for runs that already finished. A run left ``running``
        by an earlier attempt starts over without its partial results.
        """
        with self.db.session() as session:
            run = session.query(TrackingRun).filter(TrackingRun.id == run_id).first()
            if run is None:
                raise NotFoundError(f"Run {run_id} not found")

            if run.status in FINISHED_STATUSES:
                logger.warning("run_already_finished", run_id=run_id, status=run.status)
                return None

            config: TrackingConfig = run.config
            if config is None or config.domain is None or config.prompt_set is None:
                raise NotFoundError(f"Run {run_id} has no domain or prompt set")

            if run.status == "running":
                discarded = (
                    session.query(TrackingResult)
                    .filter(TrackingResult.run_id == run_id)
                    .delete(synchronize_session=False)
                )
                logger.warning("run_restarted", run_id=run_id, discarded_results=discarded)

            run.status = "running"
            run.started_at = datetime.utcnow()

            return RunTarget(
                run_id=run.id,
                config_id=config.id,
                interval=config.interval,
                domain_name=config.domain.name,
                domain_url=config.domain.domain_url,
                prompts=list(config.prompt_set.prompts or []),
            )

    async def _run_provider(
        self, target: RunTarget, provider: BaseProvider, prompt: str
    ) -> TrackingResult:
        try:
            answer = await provider.chat(prompt)
        except Exception as e:
            logger.error(
                "provider_prompt_failed",
                run_id=target.run_id,
                provider=provider.name,
                prompt=prompt[:50],
                error=str(e),
            )
            return TrackingResult(
                run_id=target.run_id,
                provider=provider.name,
                prompt=prompt,
                response=f"Error: {e}",
                mention_count=0,
                visibility_score=0,
            )

        response = strip_markdown(answer.text)
        citations = answer.citations or extract_urls_from_text(answer.text)
        mentions = count_mentions(response, target.domain_url, target.domain_name)
        sentiment = await analyze_sentiment(
            response, target.domain_name or target.domain_url, client=self.openai_client
        )

        return TrackingResult(
            run_id=target.run_id,
            provider=provider.name,
            prompt=prompt,
            response=response,
            mention_count=mentions,
            visibility_score=compute_visibility_score(mentions),
            citations=citations,
            sentiment=sentiment.sentiment,
            sentiment_score=sentiment.score,
            input_tokens=answer.input_tokens,
            output_tokens=answer.output_tokens,
        )

    async def _run_prompt(self, target: RunTarget, prompt: str) -> List[TrackingResult]:
        return await asyncio.gather(
            *(self._run_provider(target, provider, prompt) for provider in self.providers.values())
        )

    async def _run_batches(
        self, target: RunTarget, heartbeat: Optional[Callable[[], None]] = None
    ) -> List[str]:
        """Execute all batches and return every cited URL."""
        started = time.time()
        total = len(target.prompts)
        cited: List[str] = []

        for i in range(0, total, self.batch_size):
            batch = target.prompts[i : i + self.batch_size]
            per_prompt = await asyncio.gather(*(self._run_prompt(target, p) for p in batch))

            with self.db.session() as session:
                for results in per_prompt:
                    for result in results:
                        session.add(result)
                        cited.extend(result.citations or [])

            logger.info(
                "run_batch_completed",
                run_id=target.run_id,
                batch=i // self.batch_size + 1,
                processed=min(i + self.batch_size, total),
                total=total,
                elapsed_seconds=round(time.time() - started, 1),
            )
            if heartbeat is not None:
                heartbeat()

        return cited

    def _finish(self, target: RunTarget, status: str, error: Optional[str] = None):
        now = datetime.utcnow()
        with self.db.session() as session:
            run = session.query(TrackingRun).filter(TrackingRun.id == target.run_id).first()
            run.status = status
            run.completed_at = now
            run.error_message = error

            if status == "completed":
                next_run = compute_next_run(target.interval, now)
                if next_run is not None:
                    session.query(TrackingConfig).filter(
                        TrackingConfig.id == target.config_id
                    ).update({TrackingConfig.next_run_at: next_run})

    async def _notify(self, target: RunTarget, notify_email: Optional[str], status: str):
        if not notify_email:
            return
        await self.email_sender.send_run_completed(
            to=notify_email,
            run_id=target.run_id,
            domain_name=target.domain_name,
            prompt_count=len(target.prompts),
            status=status,
        )

    async def execute(
        self,
        run_id: str,
        notify_email: Optional[str] = None,
        heartbeat: Optional[Callable[[], None]] = None,
    ) -> Dict:
        """Execute a run to completion.

        A failing run is recorded as ``failed`` and reported in the returned
        summary. Runs that already finished are skipped, so a job that is
        delivered twice never stores a second set of results.

        Args:
            run_id: Tracking run ID
            notify_email: Address notified when the run finishes
            heartbeat: Called after every stored batch

        Returns:
            Dict with run id, status ("completed", "failed" or "skipped") and result count

        Raises:
            NotFoundError: If the run or its config is gone
        """
        target = self._load_target(run_id)
        if target is None:
            return {"runId": run_id, "status": "skipped", "results": 0}

        started = time.time()
        logger.info(
            "run_execution_started",
            run_id=run_id,
            prompts=len(target.prompts),
            providers=list(self.providers),
            total_calls=len(target.prompts) * len(self.providers),
        )

        try:
            if not self.providers:
                raise ProviderError("No LLM providers configured")

            cited = await self._run_batches(target, heartbeat)
            self._finish(target, "completed")
        except Exception as e:
            logger.error(
                "run_execution_failed",
                run_id=run_id,
                elapsed_seconds=round(time.time() - started, 1),
                error=str(e),
                exc_info=True,
            )
            self._finish(target, "failed", error=str(e))
            await self._notify(target, notify_email, "failed")
            return {"runId": run_id, "status": "failed", "results": 0, "error": str(e)}

        logger.info(
            "run_execution_completed",
            run_id=run_id,
            elapsed_seconds=round(time.time() - started, 1),
        )

        try:
            await fetch_favicons_for_domains(self.db, extract_citation_domains(cited))
        except Exception as e:
            logger.error("run_favicon_fetch_failed", run_id=run_id, error=str(e))

        await self._notify(target, notify_email, "completed")
        return {
            "runId": run_id,
            "status": "completed",
            "results": len(target.prompts) * len(self.providers),
        }
