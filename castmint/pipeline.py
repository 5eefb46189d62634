"""The minting pipeline: one work item in, one minted token out."""
from dataclasses import dataclass
from typing import Optional, Callable, List, Tuple

from castmint.chain import SplitsClient, TokenClient, SplitTarget, MintedToken
from castmint.db import HistoryStore, MintRecord
from castmint.errors import AlreadyMintedError, PipelineError, StoreConnectionError, ValidationError
from castmint.ipfs import PinataStorage
from castmint.logging_conf import logger
from castmint.neynar_client import NeynarClient, TargetContent
from castmint.queue.dedup import DedupGate
from castmint.queue.models import WorkItem, utc_now
from castmint.renderer import RenderClient, TargetDescription
from castmint.retry import RetryPolicy
from castmint.splits import SplitConfig, build_split_config, normalize_address


@dataclass
class MintContext:
    """Outputs accumulated step by step for one work item."""

    item: WorkItem
    requester_address: Optional[str] = None
    target: Optional[TargetContent] = None
    owner_address: Optional[str] = None
    image: Optional[bytes] = None
    image_uri: Optional[str] = None
    metadata_uri: Optional[str] = None
    split_config: Optional[SplitConfig] = None
    split: Optional[SplitTarget] = None
    token: Optional[MintedToken] = None
    record: Optional[MintRecord] = None


@dataclass
class MintResult:
    record: MintRecord
    split_created: bool
    notified: bool


class MintPipeline:
    """
    Runs the mint steps in order for a single work item.

    Each step reads what earlier steps put on the MintContext. A failing step
    stops the run and surfaces as a PipelineError naming the step. Remote
    calls go through the retry policy; the final reply is best-effort and
    never fails a mint that has already been recorded.
    """

    def __init__(self, social: NeynarClient, renderer: RenderClient, storage: PinataStorage,
                 splits: SplitsClient, tokens: TokenClient, history: HistoryStore,
                 dedup: DedupGate, retry_policy: RetryPolicy, contract_address: str,
                 platform_wallet: str, collect_url_base: str = "https://zora.co/collect/base:",
                 collect_referrer: Optional[str] = None):
        self.social = social
        self.renderer = renderer
        self.storage = storage
        self.splits = splits
        self.tokens = tokens
        self.history = history
        self.dedup = dedup
        self.retry = retry_policy
        self.contract_address = contract_address
        self.platform_wallet = platform_wallet
        self.collect_url_base = collect_url_base
        self.collect_referrer = collect_referrer

    @property
    def steps(self) -> List[Tuple[str, Callable[[MintContext], None]]]:
        return [
            ("recheck", self.recheck),
            ("validate_requester", self.validate_requester),
            ("resolve_target", self.resolve_target),
            ("render_asset", self.render_asset),
            ("persist_asset", self.persist_asset),
            ("persist_metadata", self.persist_metadata),
            ("resolve_split", self.resolve_split),
            ("mint_token", self.mint_token),
            ("record_result", self.record_result),
        ]

    def run(self, item: WorkItem) -> MintResult:
        ctx = MintContext(item=item)
        logger.info(
            f"Processing mint {item.work_hash} for target {item.target_hash}",
            extra={"work_hash": item.work_hash, "target_hash": item.target_hash}
        )
        for name, step in self.steps:
            try:
                step(ctx)
            except Exception as e:
                logger.error(
                    f"Step {name} failed for {item.work_hash}: {e}",
                    extra={"work_hash": item.work_hash, "target_hash": item.target_hash, "step": name}
                )
                raise PipelineError(name, item.work_hash, item.target_hash, e) from e

        notified = self.notify(ctx)
        logger.info(f"Minted {item.target_hash}: {ctx.record.collect_url}")
        return MintResult(
            record=ctx.record,
            split_created=ctx.split.tx_hash is not None,
            notified=notified,
        )

    def recheck(self, ctx: MintContext) -> None:
        """Refuse to mint a target that completed after this item was queued."""
        target_hash = ctx.item.target_hash
        if self.dedup.is_target_processed(target_hash):
            raise AlreadyMintedError(f"Target {target_hash} already processed")
        existing = self.history.lookup_result(target_hash)
        if existing:
            raise AlreadyMintedError(f"Target {target_hash} already minted at {existing.collect_url}")

    def validate_requester(self, ctx: MintContext) -> None:
        address = ctx.item.requester.payable_address
        if not address:
            raise ValidationError("Minter has no verified ETH address")
        ctx.requester_address = normalize_address(address)

    def resolve_target(self, ctx: MintContext) -> None:
        target_hash = ctx.item.target_hash
        ctx.target = self.retry.call("resolve_target", lambda: self.social.fetch_content(target_hash))
        address = ctx.target.owner.payable_address or ctx.item.target_owner.payable_address
        if not address:
            raise ValidationError("Parent cast author has no verified ETH address")
        ctx.owner_address = normalize_address(address)

    def render_asset(self, ctx: MintContext) -> None:
        description = TargetDescription(
            cast_hash=ctx.item.target_hash,
            text=ctx.target.text,
            author_username=ctx.target.owner.username,
            author_display_name=ctx.target.owner.display_name,
        )
        ctx.image = self.retry.call("render_asset", lambda: self.renderer.render(description))

    def persist_asset(self, ctx: MintContext) -> None:
        filename = f"{ctx.item.target_hash}.png"
        ctx.image_uri = self.retry.call(
            "persist_asset", lambda: self.storage.store(ctx.image, filename, content_type="image/png")
        )

    def persist_metadata(self, ctx: MintContext) -> None:
        document = self.build_metadata(ctx)
        filename = f"{ctx.item.target_hash}.json"
        ctx.metadata_uri = self.retry.call(
            "persist_metadata", lambda: self.storage.store_json(document, filename)
        )

    def build_metadata(self, ctx: MintContext) -> dict:
        owner = ctx.target.owner.username
        return {
            "name": f"Cast by {owner}",
            "description": ctx.target.text,
            "image": ctx.image_uri,
            "properties": {
                "casterUsername": owner,
                "minterUsername": ctx.item.requester.username,
                "castHash": ctx.item.target_hash,
                "mintHash": ctx.item.work_hash,
                "timestamp": ctx.item.submitted_at,
            },
        }

    def resolve_split(self, ctx: MintContext) -> None:
        """Reuse the split for this exact recipient set, deploying it only if missing."""
        config = build_split_config(ctx.owner_address, ctx.requester_address, self.platform_wallet)
        ctx.split_config = config
        predicted = self.retry.call("resolve_split", lambda: self.splits.predict(config))
        if predicted.exists:
            logger.info(f"Using existing split {predicted.address}")
            ctx.split = predicted
            return
        ctx.split = self.retry.call("resolve_split", lambda: self.splits.create(config))

    def mint_token(self, ctx: MintContext) -> None:
        ctx.token = self.retry.call(
            "mint_token",
            lambda: self.tokens.mint(self.contract_address, ctx.metadata_uri, ctx.split.address),
        )
        logger.info(f"Minted token {ctx.token.token_id} on {ctx.token.contract_address}")

    def record_result(self, ctx: MintContext) -> None:
        """Persist the mint, then mark the target processed. Order matters."""
        ctx.record = MintRecord(
            target_hash=ctx.item.target_hash,
            collect_url=self.collect_url(ctx.token),
            owner_username=ctx.target.owner.username,
            requester_username=ctx.item.requester.username,
            work_hash=ctx.item.work_hash,
            minted_at=utc_now(),
            contract_address=ctx.token.contract_address,
            token_id=ctx.token.token_id,
            split_address=ctx.split.address,
            metadata_uri=ctx.metadata_uri,
        )
        self.retry.call("record_result", lambda: self.history.record_result(ctx.record))
        self.mark_processed(ctx)

    def mark_processed(self, ctx: MintContext) -> None:
        """Mark the dedup gate once the record exists.

        The history store stays authoritative: recheck and ingest both
        consult it, so a gate that cannot be marked is logged, not fatal.
        """
        target_hash = ctx.item.target_hash
        try:
            self.retry.call("mark_processed", lambda: self.dedup.mark_target_processed(target_hash))
        except StoreConnectionError as e:
            logger.error(
                f"Mint recorded but dedup mark failed for {target_hash}: {e}",
                extra={"work_hash": ctx.item.work_hash, "target_hash": target_hash, "step": "record_result"}
            )

    def notify(self, ctx: MintContext) -> bool:
        """Reply under the target cast with the collect link. Failures are logged only."""
        text = (
            f"This cast has been minted by @{ctx.item.requester.username}\n\n"
            f"Collect here: {ctx.record.collect_url}"
        )
        try:
            self.retry.call(
                "notify",
                lambda: self.social.publish_reply(text, parent=ctx.item.target_hash, embeds=[ctx.record.collect_url]),
            )
            return True
        except Exception as e:
            logger.warning(
                f"Mint succeeded but reply failed for {ctx.item.target_hash}: {e}",
                extra={"work_hash": ctx.item.work_hash, "target_hash": ctx.item.target_hash, "step": "notify"}
            )
            return False

    def collect_url(self, token: MintedToken) -> str:
        url = f"{self.collect_url_base}{token.contract_address}/{token.token_id}"
        if self.collect_referrer:
            url += f"?referrer={self.collect_referrer}"
        return url
