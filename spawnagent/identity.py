"""
spawn-agent identity — version and banner.
"""

__version__ = "0.3.0"
__codename__ = "SPAWN-AGENT"
__tagline__ = "Hand off. Keep going."

BANNER = r"""
  ___ _ __   __ ___      ___ __       __ _  __ _  ___ _ __ | |_
 / __| '_ \ / _` \ \ /\ / / '_ \____ / _` |/ _` |/ _ \ '_ \| __|
 \__ \ |_) | (_| |\ V  V /| | | |___| (_| | (_| |  __/ | | | |_
 |___/ .__/ \__,_| \_/\_/ |_| |_|    \__,_|\__, |\___|_| |_|\__|
     |_|                                   |___/
"""
