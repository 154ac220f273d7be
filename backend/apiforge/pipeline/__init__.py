"""
apiforge — Request Pipeline
============================

    - context.py:  RequestContext (frozen, evolved per stage), AuthIdentity
    - outcome.py:  Continue / ShortCircuit, Stage, HandlerResult
    - chain.py:    RequestPipeline: version → match → endpoint stages →
                   handler (under the per-request timeout)
"""
