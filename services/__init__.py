"""Like/match reconciliation and ordered conversation engine."""
