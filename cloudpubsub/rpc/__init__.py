from cloudpubsub.rpc.abstract import PubSubRpc
from cloudpubsub.rpc.cloud import CloudPubSubRpc
from cloudpubsub.rpc.local import LocalPubSubRpc, LocalPubSubServer

__all__ = ['PubSubRpc', 'CloudPubSubRpc', 'LocalPubSubRpc', 'LocalPubSubServer']
