"""
Crawl job files.

A job file is YAML describing one crawl:

    target: <address>
    rpc_url: https://api.mainnet-beta.solana.com
    concurrency: 16
    retry: {attempts: 5, base_delay: 0.5, max_delay: 30}
    until_block_time: 1650000000
    tx_filters:
      - {type: successful}
    ix_filters:
      - {type: program, program_id: <address>}
      - {type: account_count, op: ge, value: 16}
    extract:
      - {label: mint, position: 5}

`preset: candy_machine_v1` (or v2) seeds filters/extraction; anything listed
in the file is added after the preset's own.

Environment overrides (a .env file in the working directory is loaded):
    LEDGER_RPC_URL, CRAWLER_COMMITMENT, CRAWLER_CONCURRENCY
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .builder import CrawlerBuilder, CrawlerConfig, DEFAULT_CONCURRENCY
from .errors import ConfigurationError
from .filters.registry import build_ix_filter, build_tx_filter
from .ledger.rpc_client import MAINNET_RPC_URL, RpcConfig
from .presets import preset_builder
from .types import ExtractionSpec


logger = logging.getLogger(__name__)

# Accepted YAML types per job key; None means the key may be null
_FIELD_TYPES: Dict[str, Tuple[Any, ...]] = {
    "target": (str,),
    "rpc_url": (str,),
    "commitment": (str,),
    "request_timeout": (int, float),
    "preset": (str, None),
    "concurrency": (int,),
    "batch_size": (int,),
    "retry": (dict,),
    "fetch_timeout": (int, float, None),
    "until_signature": (str, None),
    "until_block_time": (int, None),
    "max_transactions": (int, None),
    "chronological": (bool,),
    "unique": (bool, None),
    "tx_filters": (list,),
    "ix_filters": (list,),
    "extract": (list,),
}


def _type_name(t) -> str:
    return "null" if t is None else t.__name__


def _check_type(key: str, value: Any):
    allowed = _FIELD_TYPES[key]
    if value is None:
        if None in allowed:
            return
    elif isinstance(value, bool):
        if bool in allowed:
            return
    elif isinstance(value, tuple(t for t in allowed if t is not None)):
        return
    expected = " or ".join(_type_name(t) for t in allowed)
    raise ConfigurationError(f"Job key '{key}' must be {expected}, got {value!r}")


@dataclass
class JobConfig:
    """Everything needed to run one crawl from the command line."""
    target: str = ""
    rpc_url: str = MAINNET_RPC_URL
    commitment: str = "finalized"
    request_timeout: float = 30.0
    preset: Optional[str] = None

    concurrency: int = DEFAULT_CONCURRENCY
    batch_size: int = 1000
    retry: Dict[str, float] = field(default_factory=dict)
    fetch_timeout: Optional[float] = 30.0
    until_signature: Optional[str] = None
    until_block_time: Optional[int] = None
    max_transactions: Optional[int] = None
    chronological: bool = False
    unique: Optional[bool] = None

    tx_filters: List[Dict[str, Any]] = field(default_factory=list)
    ix_filters: List[Dict[str, Any]] = field(default_factory=list)
    extract: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "JobConfig":
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown job keys: {', '.join(unknown)}")
        for key, value in data.items():
            _check_type(key, value)
        return cls(**dict(data))

    def rpc_config(self) -> RpcConfig:
        return RpcConfig(
            url=self.rpc_url,
            commitment=self.commitment,
            request_timeout=self.request_timeout,
        )

    def to_builder(self) -> CrawlerBuilder:
        builder = preset_builder(self.preset, self.target) if self.preset else CrawlerBuilder(self.target)

        for spec in self.tx_filters:
            builder.add_tx_filter(build_tx_filter(spec))
        for spec in self.ix_filters:
            builder.add_ix_filter(build_ix_filter(spec))
        for spec in self.extract:
            try:
                builder.add_account_index(ExtractionSpec(label=spec["label"], position=int(spec["position"])))
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Bad extract entry {spec!r}: {e}") from e

        builder.concurrency(self.concurrency).batch_size(self.batch_size)
        if self.retry:
            for key, value in self.retry.items():
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigurationError(f"Bad retry settings {self.retry!r}: {key} must be a number")
            try:
                builder.retry(**self.retry)
            except TypeError as e:
                raise ConfigurationError(f"Bad retry settings {self.retry!r}: {e}") from e
        builder.fetch_timeout(self.fetch_timeout)
        builder.until_signature(self.until_signature).until_block_time(self.until_block_time)
        builder.max_transactions(self.max_transactions)
        builder.chronological(self.chronological)
        if self.unique is not None:
            builder.unique(self.unique)
        return builder

    def to_crawler_config(self) -> CrawlerConfig:
        return self.to_builder().build()


def apply_env_overrides(job: JobConfig, environ: Optional[Mapping[str, str]] = None) -> JobConfig:
    """Override job settings from LEDGER_*/CRAWLER_* environment variables."""
    env = os.environ if environ is None else environ

    if env.get("LEDGER_RPC_URL"):
        job.rpc_url = env["LEDGER_RPC_URL"]
    if env.get("CRAWLER_COMMITMENT"):
        job.commitment = env["CRAWLER_COMMITMENT"]
    if env.get("CRAWLER_CONCURRENCY"):
        try:
            job.concurrency = int(env["CRAWLER_CONCURRENCY"])
        except ValueError:
            raise ConfigurationError(
                f"CRAWLER_CONCURRENCY must be an integer, got {env['CRAWLER_CONCURRENCY']!r}"
            ) from None
    return job


def load_job(path: Union[str, Path], environ: Optional[Mapping[str, str]] = None) -> JobConfig:
    """Read a YAML job file and apply environment overrides."""
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read job file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Job file {path} must contain a mapping")

    if environ is None:
        load_dotenv()

    job = apply_env_overrides(JobConfig.from_mapping(data), environ)
    logger.debug(f"Loaded job {path}: target={job.target} preset={job.preset}")
    return job
