"""Pure domain types: clock, DTOs, audit and event collaborators."""
