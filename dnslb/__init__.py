"""DNS Failover Balancer.

Single-instance health checker that keeps a Cloudflare zone in sync with the
health of a fleet of endpoints:
 - probes every target over ICMP, TCP, HTTP or HTTPS each interval
 - removes the A record of a target that goes down (never the last one of a name)
 - re-creates the A record once the target is healthy again
 - recovers which targets were excluded from the zone itself after a restart
"""
