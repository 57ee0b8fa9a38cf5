"""execution package

Transfer dispatch core: error taxonomy, result models, dispatcher, batch
runner and scheduler. Import submodules directly (e.g. ``execution.dispatcher``).
"""
