"""
quantmind/agent

- analyst.py: MarketAnalyst (provider call -> JSON recovery -> view-model)
- normalizer.py: score normalization shared by every score display
"""
