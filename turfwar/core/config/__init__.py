"""
Configuration subsystem for turfwar.

- **config.py**: static configuration from environment variables (.env support)
- **manager.py**: game balance configuration from YAML with dot-path reads

Only the static layer is re-exported here; `ConfigManager` depends on the
logging subsystem, which itself reads `Config`, so import it from its module:

```python
from turfwar.core.config import Config
from turfwar.core.config.manager import ConfigManager

db_url = Config.DATABASE_URL
raid_rate = ConfigManager.get("gangs.raid.base_rate", default=50)
```
"""

from turfwar.core.config.config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
