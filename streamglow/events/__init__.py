"""
events — Raw payload decoding and the bounded FIFO between the transport and
the pipeline thread.
"""
