"""HTTP and websocket API routers."""
