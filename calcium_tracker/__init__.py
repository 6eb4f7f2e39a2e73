# -*- coding: utf-8 -*-
"""Calcium Camera backend and client submission flow."""
