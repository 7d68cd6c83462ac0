"""
Kubernetes discovery of container images.

Lists the images of every container and init container of the pods in one
namespace or across the cluster, optionally with the controller that owns
each pod.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from krane.error_utils import create_kubernetes_error
from krane.filters import FilterSet
from krane.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class ImageInfo:
    """An image and the workload it was found in"""
    image: str
    namespace: str
    source_kind: str
    source_name: str

    def to_dict(self) -> Dict[str, str]:
        data = asdict(self)
        return {
            "image": data["image"],
            "namespace": data["namespace"],
            "sourceKind": data["source_kind"],
            "sourceName": data["source_name"],
        }


def _load_kubernetes_config(kubeconfig: Optional[str] = None):
    """Helper function to load Kubernetes configuration.

    Tries in-cluster config first, then falls back to local kubeconfig.
    An explicit kubeconfig path skips the in-cluster attempt.
    """
    from kubernetes import config as k8s_config

    if kubeconfig:
        k8s_config.load_kube_config(config_file=kubeconfig)
        return
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()


def _get_kubernetes_clients(kubeconfig: Optional[str] = None) -> Tuple[Any, Any, Any]:
    """Helper function to get Kubernetes API clients.

    Returns:
        Tuple of (CoreV1Api, AppsV1Api, BatchV1Api)
    """
    from kubernetes import client as k8s_client

    _load_kubernetes_config(kubeconfig)
    return k8s_client.CoreV1Api(), k8s_client.AppsV1Api(), k8s_client.BatchV1Api()


def _pod_images(pod) -> List[str]:
    """Images of a pod's containers followed by its init containers."""
    spec = pod.spec
    containers = list(spec.containers or []) + list(spec.init_containers or [])
    return [c.image for c in containers if c.image]


class KubernetesClient:
    """Lists pod images through the Kubernetes API."""

    def __init__(self, kubeconfig: Optional[str] = None, core_v1=None, apps_v1=None, batch_v1=None):
        """Initialize KubernetesClient.

        Args:
            kubeconfig: Path to a kubeconfig file (default: in-cluster, then ~/.kube/config)
            core_v1, apps_v1, batch_v1: Pre-built API clients, mainly for tests

        Raises:
            ActionableError: If no cluster configuration can be loaded
        """
        if core_v1 is None:
            try:
                core_v1, apps_v1, batch_v1 = _get_kubernetes_clients(kubeconfig)
            except Exception as e:
                logger.error(f"Failed to load Kubernetes config: {e}")
                raise create_kubernetes_error("load cluster configuration", e) from e
        self.core_v1 = core_v1
        self.apps_v1 = apps_v1
        self.batch_v1 = batch_v1

    def _list_pods(self, all_namespaces: bool, namespace: str):
        from kubernetes.client.rest import ApiException

        try:
            if all_namespaces:
                return self.core_v1.list_pod_for_all_namespaces().items
            return self.core_v1.list_namespaced_pod(namespace=namespace).items
        except ApiException as e:
            where = "all namespaces" if all_namespaces else f"namespace {namespace}"
            raise create_kubernetes_error(f"list pods in {where}", e) from e

    @staticmethod
    def _namespace_filter(all_namespaces: bool, include_namespaces: Optional[List[str]],
                          exclude_namespaces: Optional[List[str]]) -> Optional[FilterSet]:
        namespace_filter = FilterSet(include_namespaces, exclude_namespaces)
        if not namespace_filter:
            return None
        if not all_namespaces:
            logger.warning(
                "⚠️ include/exclude namespaces flags only apply when listing all namespaces; "
                "with --namespace they are ignored."
            )
            return None
        return namespace_filter

    def list_images(
        self,
        all_namespaces: bool,
        namespace: str = "",
        include_namespaces: Optional[List[str]] = None,
        exclude_namespaces: Optional[List[str]] = None,
    ) -> List[str]:
        """List images from pods with namespace filtering support.

        Args:
            all_namespaces: List across the whole cluster
            namespace: Namespace to list when all_namespaces is False
            include_namespaces: Namespace patterns to keep (all namespaces only)
            exclude_namespaces: Namespace patterns to drop (all namespaces only)

        Returns:
            Image references in pod order, duplicates included
        """
        namespace_filter = self._namespace_filter(all_namespaces, include_namespaces, exclude_namespaces)

        images = []
        for pod in self._list_pods(all_namespaces, namespace):
            if namespace_filter is not None and not namespace_filter.allows(pod.metadata.namespace):
                continue
            images.extend(_pod_images(pod))
        logger.debug(f"Found {len(images)} container images")
        return images

    def list_images_with_source(
        self,
        all_namespaces: bool,
        namespace: str = "",
        include_namespaces: Optional[List[str]] = None,
        exclude_namespaces: Optional[List[str]] = None,
    ) -> List[ImageInfo]:
        """Like list_images, but with the top-level controller owning each pod."""
        namespace_filter = self._namespace_filter(all_namespaces, include_namespaces, exclude_namespaces)

        results = []
        owners: Dict[Tuple[str, str, str], Tuple[str, str]] = {}
        for pod in self._list_pods(all_namespaces, namespace):
            ns = pod.metadata.namespace
            if namespace_filter is not None and not namespace_filter.allows(ns):
                continue

            kind, name = "Pod", pod.metadata.name
            refs = pod.metadata.owner_references or []
            if refs:
                key = (ns, refs[0].kind, refs[0].name)
                if key not in owners:
                    owners[key] = self.resolve_top_owner(ns, refs[0].kind, refs[0].name)
                kind, name = owners[key]

            for image in _pod_images(pod):
                results.append(ImageInfo(image=image, namespace=ns, source_kind=kind, source_name=name))
        return results

    def resolve_top_owner(self, namespace: str, kind: str, name: str) -> Tuple[str, str]:
        """Resolve ReplicaSet -> Deployment and Job -> CronJob owners.

        Lookup failures leave the owner as given.
        """
        from kubernetes.client.rest import ApiException

        try:
            if kind == "ReplicaSet":
                obj = self.apps_v1.read_namespaced_replica_set(name=name, namespace=namespace)
                parent_kind = "Deployment"
            elif kind == "Job":
                obj = self.batch_v1.read_namespaced_job(name=name, namespace=namespace)
                parent_kind = "CronJob"
            else:
                return kind, name
        except ApiException as e:
            logger.debug(f"Could not resolve owner of {kind}/{name} in {namespace}: {e.status}")
            return kind, name

        for ref in obj.metadata.owner_references or []:
            if ref.kind == parent_kind:
                return ref.kind, ref.name
        return kind, name
