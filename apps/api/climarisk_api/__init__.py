"""ClimaRisk API: hash-chained weather risk ledger with derived projections."""

__version__ = "0.1.0"
