"""Pure domain core: statuses, transition tables, code formats and DTOs."""
