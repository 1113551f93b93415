#!/usr/bin/env python3
"""
Fit cache for long-running model fits.

A fit is stored at a fixed file path chosen by the caller. When the file
exists the stored object is returned and the fit is not recomputed. The
cache is keyed by the path only: changing the data or the priors does not
invalidate it. Use ``invalidate()`` (or ``refit=True`` in the Bayesian
stage) to force a new fit.

Usage
-----
    from utils.cache import FitCache

    cache = FitCache(FITS_DIR / 'log_informative.pkl')

    result = cache.get_or_compute(lambda: engine.fit(df, spec))

    # Check cache statistics
    print(cache.stats())
"""
from __future__ import annotations

import json
import pickle
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

# Add parent directory for config import
sys.path.insert(0, str(Path(__file__).parent.parent))

import config


# =============================================================================
# CONFIGURATION
# =============================================================================

def _get_fits_dir() -> Path:
    """Fits directory from config, read at call time."""
    return config.FITS_DIR


# =============================================================================
# FIT CACHE
# =============================================================================

class FitCache:
    """
    At-most-once cache for a single fitted object at a fixed path.

    Parameters
    ----------
    path : str or Path
        Cache file. A ``.meta.json`` sidecar is written next to it.
    enabled : bool, optional
        Whether caching is enabled (default: True)

    Examples
    --------
    >>> cache = FitCache('data_work/fits/log_default.pkl')
    >>> fit = cache.get_or_compute(lambda: expensive_fit())
    >>> fit = cache.get_or_compute(lambda: expensive_fit())   # loaded from disk
    >>> cache.stats()
    {'hits': 1, 'misses': 1, 'hit_rate': 50.0, 'compute_time_sec': ...}
    """

    def __init__(self, path: Union[str, Path], enabled: bool = True):
        self.path = Path(path)
        self.enabled = enabled and config.CACHE_ENABLED

        # Statistics
        self._hits = 0
        self._misses = 0
        self._compute_time = 0.0

    @property
    def meta_path(self) -> Path:
        """Metadata sidecar for the cache file."""
        return self.path.with_suffix('.meta.json')

    def exists(self) -> bool:
        """True if a cached fit is present on disk."""
        return self.path.exists()

    def get(self) -> tuple[bool, Any]:
        """
        Load the cached object if the file exists.

        Returns
        -------
        tuple[bool, Any]
            (found, value) - found is True on a cache hit
        """
        if not self.enabled or not self.path.exists():
            return False, None

        with open(self.path, 'rb') as f:
            value = pickle.load(f)
        self._hits += 1
        return True, value

    def set(self, value: Any, compute_time: Optional[float] = None) -> Optional[Path]:
        """
        Pickle ``value`` to the fit file and write the metadata sidecar.

        Returns the fit file path, or None when caching is disabled.
        """
        if not self.enabled:
            return None

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'wb') as f:
            pickle.dump(value, f, protocol=pickle.HIGHEST_PROTOCOL)

        meta = {
            'path': str(self.path),
            'created': datetime.now().isoformat(),
            'compute_time_sec': compute_time,
            'size_bytes': self.path.stat().st_size,
        }
        with open(self.meta_path, 'w') as f:
            json.dump(meta, f, indent=2)

        return self.path

    def metadata(self) -> dict:
        """Return the sidecar metadata, or an empty dict if absent."""
        if not self.meta_path.exists():
            return {}
        with open(self.meta_path) as f:
            return json.load(f)

    def get_or_compute(
        self,
        compute_fn: Callable[[], Any],
        verbose: bool = True,
    ) -> Any:
        """
        Load the stored fit, or run ``compute_fn`` once and store its result.

        ``compute_fn`` is not called when the file exists.
        """
        found, value = self.get()
        if found:
            if verbose:
                print(f"    [cache hit] {self.path.name}")
            return value

        self._misses += 1
        if verbose:
            print(f"    [cache miss] {self.path.name} - computing...")

        start_time = time.time()
        value = compute_fn()
        compute_time = time.time() - start_time
        self._compute_time += compute_time

        self.set(value, compute_time)

        if verbose:
            print(f"    [cached] {self.path.name} ({compute_time:.2f}s)")

        return value

    def invalidate(self) -> bool:
        """Delete the fit file and its sidecar; True if a fit was there."""
        removed = self.path.exists()
        self.path.unlink(missing_ok=True)
        self.meta_path.unlink(missing_ok=True)
        return removed

    def stats(self) -> dict:
        """Hits, misses, hit rate (%) and total compute seconds for this instance."""
        lookups = self._hits + self._misses
        return {
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': round(100 * self._hits / lookups, 1) if lookups else 0.0,
            'compute_time_sec': round(self._compute_time, 2),
        }


# =============================================================================
# GLOBAL CACHE OPERATIONS
# =============================================================================

def clear_fit_caches(fits_dir: Optional[Path] = None) -> int:
    """
    Delete every cached fit in a directory.

    Returns
    -------
    int
        Number of fit files removed
    """
    fits_dir = Path(fits_dir) if fits_dir is not None else _get_fits_dir()
    if not fits_dir.exists():
        return 0

    count = 0
    for path in fits_dir.glob('*.pkl'):
        FitCache(path).invalidate()
        count += 1
    return count


def list_fit_caches(fits_dir: Optional[Path] = None) -> dict:
    """
    Describe cached fits in a directory.

    Returns
    -------
    dict
        Mapping of fit name to size and creation time
    """
    fits_dir = Path(fits_dir) if fits_dir is not None else _get_fits_dir()
    if not fits_dir.exists():
        return {}

    results = {}
    for path in sorted(fits_dir.glob('*.pkl')):
        meta = FitCache(path).metadata()
        results[path.stem] = {
            'size_mb': round(path.stat().st_size / (1024 * 1024), 2),
            'created': meta.get('created', 'unknown'),
        }
    return results
