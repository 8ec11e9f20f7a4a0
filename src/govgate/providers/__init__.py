"""Provider clients.

One module per upstream: ``vahan`` (vehicle and licence lookups over an
encrypted envelope), ``nic`` (government e-way bill API), ``whitebooks``
(the GSP for e-way bills and e-invoices). Each client builds requests
and decodes responses; the dispatcher decides when to send them.
"""
