"""Screening service: resolve symbols, screen them concurrently, keep order."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ethicscreen.config import settings
from ethicscreen.connectors.base import FinancialDataConnector, InstrumentSource, ResultSink
from ethicscreen.models import (
    Basket,
    Confidence,
    Financials,
    Instrument,
    Policy,
    ScreenRequest,
    ScreenResponse,
    ScreeningConfig,
    ScreeningResult,
    DEFAULT_CONFIG,
    parse_request,
)
from ethicscreen.models.base import utcnow
from ethicscreen.score import HoldingOutcome, LookThroughAggregator, ScreeningEngine

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_WARNING = "Some results have low confidence due to insufficient data"


@dataclass
class ScreenRun:
    """State shared by every symbol of one screen call."""

    request: ScreenRequest
    now: datetime
    # One financial lookup per symbol per call
    lookups: dict[str, asyncio.Task] = field(default_factory=dict)


def warn(notes: list[str], message: str) -> None:
    """Log a warning and record it for the response."""
    logger.warning(message)
    notes.append(message)


async def cancel_pending(tasks: list[asyncio.Future]) -> None:
    """Cancel unfinished tasks and wait until they have unwound."""
    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class ScreeningService:
    """Screen a request against a data source.

    Resolution and financial lookups are async and run concurrently; the
    scoring itself is delegated to the synchronous engine.
    """

    def __init__(
        self,
        source: InstrumentSource,
        financials: Optional[FinancialDataConnector] = None,
        sink: Optional[ResultSink] = None,
        config: Optional[ScreeningConfig] = None,
        persist: Optional[bool] = None,
    ):
        self.source = source
        self.financials = financials
        self.sink = sink
        self.config = config or DEFAULT_CONFIG
        self.persist = settings.persist_results if persist is None else persist
        self.engine = ScreeningEngine(self.config)
        self.aggregator = LookThroughAggregator(self.config)

    async def screen(self, payload: Any) -> ScreenResponse:
        """
        Screen every requested symbol.

        Args:
            payload: A ScreenRequest or a raw dict in wire format

        Returns:
            ScreenResponse with one result per symbol, in request order

        Raises:
            InvalidRequestError: If the payload is malformed
        """
        request = parse_request(payload)
        run = ScreenRun(request=request, now=utcnow())
        request_id = str(uuid.uuid4())

        logger.info(f"[{request_id}] Screening {len(request.symbols)} symbol(s)")

        results: list[Optional[ScreeningResult]] = [None] * len(request.symbols)
        # Warnings are kept per symbol and merged in request order
        notes: list[list[str]] = [[] for _ in request.symbols]

        async def resolve(index: int, symbol: str) -> None:
            results[index] = await self._screen_symbol(symbol, run, notes[index])

        tasks = [asyncio.ensure_future(resolve(i, s)) for i, s in enumerate(request.symbols)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # A failed or cancelled call leaves nothing running behind it
            await cancel_pending(tasks + list(run.lookups.values()))
            raise

        warnings = [message for symbol_notes in notes for message in symbol_notes]

        if any(r.confidence is Confidence.LOW for r in results):
            warnings.append(LOW_CONFIDENCE_WARNING)

        if self.sink is not None and self.persist:
            try:
                await self.sink.save_results(request_id, results)
            except Exception as e:
                logger.error(f"[{request_id}] Failed to save results: {e}")
                warnings.append("Results could not be saved to the audit trail")

        logger.info(f"[{request_id}] Screened {len(results)} result(s), {len(warnings)} warning(s)")

        return ScreenResponse(
            request_id=request_id,
            as_of=run.now,
            results=results,
            warnings=warnings,
        )

    def get_result(self, audit_id: str) -> Optional[dict]:
        """Stored audit record for a result, when the sink keeps them."""
        getter = getattr(self.sink, "get_result", None)
        if getter is None:
            return None
        return getter(audit_id)

    def methodology(self, policy: Policy) -> dict:
        """Describe the rules in force for one policy."""
        config = self.config
        points = {s.value: p for s, p in config.strength_points.items()}
        base = {
            "policy": policy.value,
            "strengthPoints": points,
            "recencyBonus": config.recency_bonus,
            "recencyWindowDays": config.recency_window_days,
            "reviewItemCount": config.review_item_count,
            "confidence": {
                "highAt": config.confidence_high_at,
                "mediumAt": config.confidence_medium_at,
            },
            "basket": config.basket.model_dump(),
        }

        if policy is Policy.BDS:
            base["categories"] = {
                key: threshold.model_dump() for key, threshold in config.category_thresholds.items()
            }
        else:
            base["defaultThreshold"] = config.default_threshold.model_dump()

        if policy is Policy.DEFENSE:
            base["rules"] = config.defense.model_dump()
        elif policy is Policy.SURVEILLANCE:
            base["rules"] = config.surveillance.model_dump()
        elif policy is Policy.SHARIAH:
            base["rules"] = config.shariah.model_dump()
            base["estimates"] = config.estimates.model_dump()

        return base

    async def _screen_symbol(self, symbol: str, run: ScreenRun, notes: list[str]) -> ScreeningResult:
        """Resolve a top-level symbol. Store errors propagate and abort the call."""
        if run.request.options.lookthrough:
            basket = await self.source.get_basket(symbol)
            if basket is not None:
                return await self._screen_basket(
                    basket, run, depth=1, lineage=(basket.symbol.upper(),), notes=notes
                )

        instrument = await self.source.get_instrument(symbol)
        if instrument is None:
            warn(notes, f"Symbol {symbol} not found")
            return self.engine.not_found(symbol, run.now)

        return await self._screen_instrument(instrument, run)

    async def _screen_instrument(self, instrument: Instrument, run: ScreenRun) -> ScreeningResult:
        filters = run.request.filters
        financials = None
        if filters.is_enabled(Policy.SHARIAH) and instrument.financials is None:
            financials = await self._lookup_financials(instrument.symbol, run)

        return self.engine.screen(instrument, filters, financials=financials, now=run.now)

    async def _lookup_financials(self, symbol: str, run: ScreenRun) -> Optional[Financials]:
        """Fetch financials at most once per symbol per run."""
        if self.financials is None or not settings.financial_lookup_enabled:
            return None

        task = run.lookups.get(symbol)
        if task is None:
            logger.debug(f"Fetching financial data for {symbol}")
            task = asyncio.ensure_future(self.financials.fetch(symbol))
            run.lookups[symbol] = task

        try:
            return await task
        except Exception as e:
            logger.warning(f"Financial data lookup failed for {symbol}: {e}")
            return None

    async def _screen_basket(
        self,
        basket: Basket,
        run: ScreenRun,
        depth: int,
        lineage: tuple[str, ...],
        notes: list[str],
    ) -> ScreeningResult:
        """Look through a basket's holdings and aggregate them by weight."""
        max_depth = run.request.options.max_depth
        logger.debug(f"Looking through {basket.symbol} ({len(basket.holdings)} holdings, depth {depth})")

        async def screen_holding(holding, holding_notes: list[str]) -> Optional[HoldingOutcome]:
            symbol = holding.symbol.upper()
            try:
                nested = await self.source.get_basket(symbol)
                if nested is not None:
                    if depth >= max_depth or symbol in lineage:
                        result = self.aggregator.depth_limit_placeholder(holding, run.now)
                    else:
                        result = await self._screen_basket(
                            nested, run, depth + 1, lineage + (symbol,), holding_notes
                        )
                    return HoldingOutcome(holding=holding, result=result)

                instrument = await self.source.get_instrument(symbol)
                if instrument is None:
                    warn(holding_notes, f"Holding {symbol} in {basket.symbol} not found; skipped")
                    return None

                result = await self._screen_instrument(instrument, run)
                return HoldingOutcome(holding=holding, result=result)

            except Exception as e:
                warn(holding_notes, f"Holding {symbol} in {basket.symbol} could not be screened; skipped ({e})")
                return None

        per_holding: list[list[str]] = [[] for _ in basket.holdings]
        screened = await asyncio.gather(
            *(screen_holding(h, n) for h, n in zip(basket.holdings, per_holding))
        )
        # Holding order, not completion order
        for holding_notes in per_holding:
            notes.extend(holding_notes)

        outcomes = [o for o in screened if o is not None]
        skipped = len(screened) - len(outcomes)

        return self.aggregator.aggregate(basket, outcomes, skipped=skipped, now=run.now)
