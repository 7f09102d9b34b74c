"""Backend-For-Frontend for the shop web client."""
