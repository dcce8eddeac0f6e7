#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility functions for the environmental layer extraction pipeline.

This module provides common utility functions used across the acquisition
and processing modules, including timing, parallel execution and rounding.
"""
import functools
import math
import time
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Callable, List, Optional

from joblib import Parallel, delayed
from tqdm import tqdm

from env_layers.core.config import N_JOBS, PERFORMANCE_CONFIG
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


def timer(func: Callable) -> Callable:
    """
    Decorator to time function execution.

    Parameters
    ----------
    func : Callable
        Function to time.

    Returns
    -------
    Callable
        Wrapped function with timing.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start_time
        logger.debug(f"Function {func.__name__} took {elapsed:.2f} seconds to run")
        return result
    return wrapper


def parallel_apply(
    func: Callable,
    iterable: List[Any],
    n_jobs: Optional[int] = None,
    prefer: Optional[str] = None,
    progress: bool = True,
    **kwargs
) -> List[Any]:
    """
    Apply a function to an iterable in parallel.

    Parameters
    ----------
    func : Callable
        Function to apply.
    iterable : List[Any]
        Items to process.
    n_jobs : int, optional
        Number of jobs. If None, uses N_JOBS from config.
    prefer : str, optional
        'processes' or 'threads'. If None, uses PERFORMANCE_CONFIG.
    progress : bool, optional
        Whether to show a progress bar, by default True.
    **kwargs
        Additional arguments to pass to the function.

    Returns
    -------
    List[Any]
        Results of applying the function to each item, in input order.
    """
    if n_jobs is None:
        n_jobs = N_JOBS
    if prefer is None:
        prefer = PERFORMANCE_CONFIG.get("prefer", "threads")

    items = list(iterable)

    # Check if parallelism is enabled
    if not PERFORMANCE_CONFIG.get("use_parallel", True) or n_jobs == 1 or len(items) <= 1:
        logger.info(f"Running {len(items)} tasks sequentially")
        if progress:
            items = tqdm(items, desc=f"Running {func.__name__}")
        return [func(item, **kwargs) for item in items]

    # Use joblib for easier parallelism
    logger.info(f"Running {len(items)} tasks in parallel with {n_jobs} jobs")
    results = Parallel(n_jobs=n_jobs, prefer=prefer, verbose=10 if progress else 0)(
        delayed(func)(item, **kwargs) for item in items
    )

    return results


def round_half_away(value: float, precision: int) -> float:
    """
    Round to ``precision`` decimal digits, ties away from zero.

    The value is rounded from its shortest decimal representation, so 2.675
    rounds to 2.68. Rounding an already rounded value at the same precision
    returns it unchanged.

    Parameters
    ----------
    value : float
        Value to round.
    precision : int
        Number of decimal digits, non-negative.

    Returns
    -------
    float
        Rounded value.
    """
    if precision < 0:
        raise ValueError(f"Precision must be non-negative, got {precision}")
    if not math.isfinite(value):
        return value

    exact = Decimal(repr(float(value)))
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, exact.adjusted() + precision + 2)
        rounded = exact.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)
    return float(rounded)
