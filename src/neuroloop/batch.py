"""Daily batch jobs run by an external scheduler.

One bad user never stops the run: per-user failures are logged and counted
unless batch.fail_fast is set.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Any

from neuroloop.cognitive_age import compute_for_user
from neuroloop.config import Config
from neuroloop.logging_setup import current_user, new_job_id
from neuroloop.repository import MetricsRepository
from neuroloop.service import MetricsService

logger = logging.getLogger("neuroloop")


def _empty_summary(job: str) -> dict[str, Any]:
    return {"job": job, "job_id": new_job_id(), "processed": 0, "skipped": 0, "errors": 0, "failed_users": []}


def run_cognitive_age_batch(
    repo: MetricsRepository,
    today: date,
    config: Config | None = None,
) -> dict[str, Any]:
    """Recompute cognitive age for every user and persist result + state.

    Users without a baseline or with too few snapshots are skipped.

    Returns:
        dict with: job, job_id, processed, skipped, errors, failed_users
    """
    cfg = config or Config()
    summary = _empty_summary("cognitive_age")
    user_ids = repo.list_user_ids()
    logger.info("Cognitive-age batch %s starting for %d users", summary["job_id"], len(user_ids))

    for user_id in user_ids:
        token = current_user.set(user_id)
        try:
            baseline = repo.get_cognitive_age_baseline(user_id)
            if baseline is None:
                summary["skipped"] += 1
                continue
            outcome = compute_for_user(
                baseline,
                repo.get_daily_snapshots(user_id),
                repo.get_cognitive_age_state(user_id),
                today,
                min_snapshots=cfg.batch.min_snapshots,
            )
            if outcome is None:
                logger.debug("Skipping %s: not enough snapshots", user_id)
                summary["skipped"] += 1
                continue
            result, state = outcome
            payload = asdict(result)
            payload["regression_risk"] = result.regression_risk.value
            repo.save_cognitive_age(user_id, today, payload, state)
            summary["processed"] += 1
        except Exception:
            summary["errors"] += 1
            summary["failed_users"].append(user_id)
            logger.exception("Cognitive-age computation failed for %s", user_id)
            if cfg.batch.fail_fast:
                raise
        finally:
            current_user.reset(token)

    logger.info(
        "Cognitive-age batch %s done: processed=%d skipped=%d errors=%d",
        summary["job_id"], summary["processed"], summary["skipped"], summary["errors"],
    )
    return summary


def run_daily_refresh_batch(
    repo: MetricsRepository,
    now: datetime,
    config: Config | None = None,
) -> dict[str, Any]:
    """Run MetricsService.daily_refresh for every user, then prune old activity.

    Returns:
        dict with: job, job_id, processed, skipped, errors, failed_users, pruned
    """
    cfg = config or Config()
    service = MetricsService(repo, cfg)
    summary = _empty_summary("daily_refresh")
    summary["pruned"] = 0

    for user_id in repo.list_user_ids():
        try:
            service.daily_refresh(user_id, now)
            summary["pruned"] += repo.prune_activity(user_id, now, cfg.batch.activity_retention_days)
            summary["processed"] += 1
        except Exception:
            summary["errors"] += 1
            summary["failed_users"].append(user_id)
            logger.exception("Daily refresh failed for %s", user_id)
            if cfg.batch.fail_fast:
                raise

    logger.info(
        "Daily refresh %s done: processed=%d errors=%d pruned=%d",
        summary["job_id"], summary["processed"], summary["errors"], summary["pruned"],
    )
    return summary
