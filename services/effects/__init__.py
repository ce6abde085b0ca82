from .handlers import EffectHandlers
from .queue import EffectKind, EffectQueue
