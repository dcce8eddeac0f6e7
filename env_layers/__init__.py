#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Environmental Layers Extraction Package.

A Python toolbox for acquiring environmental raster layers, pruning redundant
predictors through correlation analysis, and sampling the retained layers at
point locations into a table ready for statistical modelling.
"""

__version__ = "0.1.0"
__author__ = "Elena Project Team"
__email__ = "user@example.com"
