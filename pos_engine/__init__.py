"""
Cart pricing and discount-authority engine for a retail point of sale.

STRUCTURE:
- pos_engine.models: Pydantic domain models and local-store ORM tables
- pos_engine.pricing: Tax table, totals calculator, volume pricing
- pos_engine.services: Cart state, discount authority, escalation poller,
  held carts, checkout
- pos_engine.clients: HTTP clients for backend collaborators
- pos_engine.repositories: Local persistence
- pos_engine.session: Wires everything for one terminal session
"""
