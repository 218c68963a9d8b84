"""
Candy Machine mint crawl presets.

Crawling a candy machine's history and pulling accounts 4 (metadata) and 5
(mint) out of its mint instructions reconstructs the set of NFTs it minted.

- v1 mint instructions always carry exactly 14 accounts, with the candy
  machine itself at position 1.
- v2 mint instructions carry at least 16 accounts (more with extra
  settings). Bot-taxed transactions succeed without minting, so they are
  excluded by their log line.
"""

from .builder import CrawlerBuilder
from .errors import ConfigurationError
from .filters import (
    IxHasAccountAtIndexFilter,
    IxNumberAccounts,
    IxProgramIdFilter,
    SuccessfulTxFilter,
    TxHasProgramId,
    TxLogExcludes,
)


CMV1_PROGRAM_ID = "cndyAnrLdpjq1Ssp1z8xxDsB8dxe7u4HL5Nxi2K5WXZ"
CMV2_PROGRAM_ID = "cndy3Z4yapfJBmL3ShUp5exZKqR3z33thTzeNMm2gRZ"
CMV2_BOT_TAX_MSG = "Botting is taxed"

METADATA_POSITION = 4
MINT_POSITION = 5


def candy_machine_v1(candy_machine_id: str) -> CrawlerBuilder:
    return (
        CrawlerBuilder(candy_machine_id)
        .add_tx_filter(SuccessfulTxFilter())
        .add_tx_filter(TxHasProgramId(CMV1_PROGRAM_ID))
        .add_ix_filter(IxProgramIdFilter(CMV1_PROGRAM_ID))
        .add_ix_filter(IxNumberAccounts.exactly(14))
        .add_ix_filter(IxHasAccountAtIndexFilter(candy_machine_id, 1))
        .add_account_index("metadata", METADATA_POSITION)
        .add_account_index("mint", MINT_POSITION)
        .unique()
    )


def candy_machine_v2(candy_machine_id: str) -> CrawlerBuilder:
    return (
        CrawlerBuilder(candy_machine_id)
        .add_tx_filter(SuccessfulTxFilter())
        .add_tx_filter(TxHasProgramId(CMV2_PROGRAM_ID))
        .add_tx_filter(TxLogExcludes(CMV2_BOT_TAX_MSG, name="cmv2_bot_tax"))
        .add_ix_filter(IxProgramIdFilter(CMV2_PROGRAM_ID))
        .add_ix_filter(IxNumberAccounts.at_least(16))
        .add_account_index("metadata", METADATA_POSITION)
        .add_account_index("mint", MINT_POSITION)
        .unique()
    )


PRESETS = {
    "candy_machine_v1": candy_machine_v1,
    "candy_machine_v2": candy_machine_v2,
}


def preset_builder(name: str, target: str) -> CrawlerBuilder:
    try:
        factory = PRESETS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown preset '{name}' (known: {', '.join(sorted(PRESETS))})") from None
    return factory(target)
