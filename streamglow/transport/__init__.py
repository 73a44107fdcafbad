"""
transport — FastAPI webhook receiver run under uvicorn.
"""
