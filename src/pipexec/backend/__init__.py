from .types import Config, Engine, Network, Stage, State, Step, Volume

__all__ = ["Config", "Engine", "Network", "Stage", "State", "Step", "Volume"]
