"""ClimaRisk background worker."""
